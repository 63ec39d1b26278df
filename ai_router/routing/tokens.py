"""Script-aware token estimation.

A calibrated approximation of what real tokenizers produce, used only
to pre-check tokens-per-minute headroom before a request is sent:

- CJK-family characters (Han, Hiragana, Katakana, Hangul, Bopomofo)
  cost one token each.
- Latin-family characters (Basic Latin through Latin Extended-B) cost
  one token per four characters, rounded up.
- Everything else (emoji, symbols, other scripts) costs one token per
  two characters, rounded up.

Python strings iterate by code point, so supplementary-plane characters
are classified as a single character.
"""

from ai_router.routing.models import ChatRequest

_CJK_RANGES = (
    (0x1100, 0x11FF),  # Hangul Jamo
    (0x3040, 0x309F),  # Hiragana
    (0x30A0, 0x30FF),  # Katakana
    (0x3100, 0x312F),  # Bopomofo
    (0x3130, 0x318F),  # Hangul Compatibility Jamo
    (0x3190, 0x319F),  # Kanbun
    (0x31A0, 0x31BF),  # Bopomofo Extended
    (0x31F0, 0x31FF),  # Katakana Phonetic Extensions
    (0x3400, 0x4DBF),  # CJK Extension A
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0xAC00, 0xD7AF),  # Hangul Syllables
    (0xF900, 0xFAFF),  # CJK Compatibility Ideographs
    (0x20000, 0x2A6DF),  # CJK Extension B
    (0x2A700, 0x2B73F),  # CJK Extension C
    (0x2B740, 0x2B81F),  # CJK Extension D
    (0x2B820, 0x2CEAF),  # CJK Extension E
    (0x2CEB0, 0x2EBEF),  # CJK Extension F
    (0x30000, 0x3134F),  # CJK Extension G
)

_LATIN_RANGES = (
    (0x0000, 0x007F),  # Basic Latin
    (0x00A0, 0x00FF),  # Latin-1 Supplement
    (0x0100, 0x017F),  # Latin Extended-A
    (0x0180, 0x024F),  # Latin Extended-B
)

LATIN_CHARS_PER_TOKEN = 4
OTHER_CHARS_PER_TOKEN = 2


def _in_ranges(code: int, ranges: tuple[tuple[int, int], ...]) -> bool:
    return any(lo <= code <= hi for lo, hi in ranges)


def _ceil_div(n: int, d: int) -> int:
    return -(-n // d)


class TokenEstimator:
    """Pure, deterministic token estimator."""

    def estimate_text(self, text: str | None) -> int:
        if not text:
            return 0

        cjk = latin = other = 0
        for char in text:
            code = ord(char)
            if _in_ranges(code, _LATIN_RANGES):
                latin += 1
            elif _in_ranges(code, _CJK_RANGES):
                cjk += 1
            else:
                other += 1

        return (
            cjk
            + _ceil_div(latin, LATIN_CHARS_PER_TOKEN)
            + _ceil_div(other, OTHER_CHARS_PER_TOKEN)
        )

    def estimate_request(self, request: ChatRequest) -> int:
        """Sum of the per-message estimates; missing content counts as zero."""
        return sum(self.estimate_text(message.text) for message in request.messages)

    def estimate_for_model(self, request: ChatRequest, model: str | None) -> int:
        # The heuristic does not vary by model yet; this is where a
        # model-specific tokenizer would plug in.
        return self.estimate_request(request)
