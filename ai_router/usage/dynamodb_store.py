"""DynamoDB-backed usage store with atomic increment-with-reset.

Table layout: partition key ``identity_key`` (S); counters and bucket
indices are plain number attributes.

An increment is one conditional ``UpdateItem`` while the stored buckets
are current. When the item is missing or a bucket has rolled over, the
reset record is written with a conditional ``PutItem`` guarded on the
exact values that were read, and the whole operation is retried if
another writer got there first.
"""

import asyncio

from ai_router.logging.audit import get_audit_logger
from ai_router.routing.errors import UsageStoreConflict
from ai_router.routing.models import UsageData
from ai_router.usage.store import UsageStore
from ai_router.usage.windows import apply_window_reset, day_bucket, minute_bucket, new_usage, now_ms

logger = get_audit_logger("usage")

_INCREMENT_EXPRESSION = (
    "ADD requests_this_minute :r, tokens_this_minute :t, requests_today :r"
)
_CURRENT_BUCKETS_CONDITION = "last_reset_minute = :m AND last_reset_day = :d"


def _is_condition_failure(exc) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoDBUsageStore(UsageStore):
    """Persists usage records in a DynamoDB table keyed by identity key."""

    MAX_ATTEMPTS = 5

    def __init__(self, table_name: str, region: str = "us-east-1"):
        self._table_name = table_name
        self._region = region
        self._table = None

    def _get_table(self):
        """Lazy-init boto3 Table resource."""
        if self._table is None:
            import boto3

            dynamodb = boto3.resource("dynamodb", region_name=self._region)
            self._table = dynamodb.Table(self._table_name)
        return self._table

    async def get(self, identity_key: str) -> UsageData | None:
        return await asyncio.to_thread(self._get_item, identity_key)

    async def set(self, identity_key: str, usage: UsageData) -> None:
        await asyncio.to_thread(
            self._get_table().put_item,
            Item={"identity_key": identity_key, **usage.to_dict()},
        )

    async def increment(self, identity_key: str, request_delta: int, token_delta: int) -> UsageData:
        return await asyncio.to_thread(self._increment, identity_key, request_delta, token_delta)

    def _get_item(self, identity_key: str) -> UsageData | None:
        resp = self._get_table().get_item(
            Key={"identity_key": identity_key},
            ConsistentRead=True,
        )
        item = resp.get("Item")
        if not item:
            return None
        return UsageData.from_dict(item)

    def _increment(self, identity_key: str, request_delta: int, token_delta: int) -> UsageData:
        from botocore.exceptions import ClientError

        table = self._get_table()

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            at_ms = now_ms()

            # Fast path: buckets are current, add in place
            try:
                resp = table.update_item(
                    Key={"identity_key": identity_key},
                    UpdateExpression=_INCREMENT_EXPRESSION,
                    ConditionExpression=_CURRENT_BUCKETS_CONDITION,
                    ExpressionAttributeValues={
                        ":r": request_delta,
                        ":t": token_delta,
                        ":m": minute_bucket(at_ms),
                        ":d": day_bucket(at_ms),
                    },
                    ReturnValues="ALL_NEW",
                )
                return UsageData.from_dict(resp["Attributes"])
            except ClientError as e:
                if not _is_condition_failure(e):
                    raise

            # Slow path: item missing or a window rolled over
            try:
                return self._put_reset_record(identity_key, request_delta, token_delta, at_ms)
            except ClientError as e:
                if not _is_condition_failure(e):
                    raise
                logger.debug(
                    "Usage increment lost a write race, retrying",
                    extra={"audit_data": {"identity_key": identity_key, "attempt": attempt}},
                )

        raise UsageStoreConflict(
            f"Could not increment usage for {identity_key} after {self.MAX_ATTEMPTS} attempts"
        )

    def _put_reset_record(
        self, identity_key: str, request_delta: int, token_delta: int, at_ms: int
    ) -> UsageData:
        from boto3.dynamodb.conditions import Attr

        stored = self._get_item(identity_key)
        if stored is None:
            usage = new_usage(at_ms)
            condition = Attr("identity_key").not_exists()
        else:
            usage = UsageData(**stored.to_dict())
            condition = (
                Attr("last_reset_minute").eq(stored.last_reset_minute)
                & Attr("last_reset_day").eq(stored.last_reset_day)
                & Attr("requests_this_minute").eq(stored.requests_this_minute)
                & Attr("tokens_this_minute").eq(stored.tokens_this_minute)
                & Attr("requests_today").eq(stored.requests_today)
            )

        apply_window_reset(usage, at_ms)
        usage.requests_this_minute += request_delta
        usage.tokens_this_minute += token_delta
        usage.requests_today += request_delta

        self._get_table().put_item(
            Item={"identity_key": identity_key, **usage.to_dict()},
            ConditionExpression=condition,
        )
        return usage
