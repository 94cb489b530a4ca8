from __future__ import annotations

import random

import pytest
from botocore.exceptions import ClientError

from giveaway_bot import ActivityLedger, GiveawayStore, LifecycleScheduler


class FakeTable:
    """In-memory stand-in for the single DynamoDB table."""

    def __init__(self, *, page_size: int | None = None) -> None:
        self.items: dict[tuple[str, str], dict[str, object]] = {}
        self.page_size = page_size
        self.fail_writes = False
        self.put_calls = 0

    def get_item(self, *, Key):
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": dict(item)} if item is not None else {}

    def put_item(self, *, Item):
        self.put_calls += 1
        if self.fail_writes:
            raise ClientError(
                {
                    "Error": {
                        "Code": "ProvisionedThroughputExceededException",
                        "Message": "Slow down",
                    }
                },
                "PutItem",
            )
        self.items[(Item["pk"], Item["sk"])] = dict(Item)

    def scan(self, *, FilterExpression, ExclusiveStartKey=None):
        attr, value = FilterExpression._values  # type: ignore[attr-defined]
        operator = FilterExpression.expression_operator  # type: ignore[attr-defined]
        matching = []
        for key in sorted(self.items):
            actual = self.items[key].get(attr.name)
            if operator == "=" and actual == value:
                matching.append(key)
            elif operator == "begins_with" and str(actual).startswith(value):
                matching.append(key)

        start = 0
        if ExclusiveStartKey is not None:
            start = matching.index((ExclusiveStartKey["pk"], ExclusiveStartKey["sk"])) + 1
        end = len(matching) if self.page_size is None else start + self.page_size
        page = matching[start:end]
        resp: dict[str, object] = {"Items": [dict(self.items[key]) for key in page]}
        if end < len(matching):
            last = page[-1]
            resp["LastEvaluatedKey"] = {"pk": last[0], "sk": last[1]}
        return resp


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingAnnouncer:
    def __init__(self) -> None:
        self.finished = []
        self.rerolled = []

    async def giveaway_finished(self, event) -> None:
        self.finished.append(event)

    async def giveaway_rerolled(self, event) -> None:
        self.rerolled.append(event)


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(table, clock) -> GiveawayStore:
    return GiveawayStore(table, clock=clock)


@pytest.fixture
def ledger(table, clock) -> ActivityLedger:
    return ActivityLedger(table, clock=clock)


@pytest.fixture
def announcer() -> RecordingAnnouncer:
    return RecordingAnnouncer()


@pytest.fixture
def scheduler(store, ledger, announcer, clock) -> LifecycleScheduler:
    return LifecycleScheduler(
        store, ledger, announcer, clock=clock, rng=random.Random(1234)
    )
