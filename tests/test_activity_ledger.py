import pytest
from conftest import FakeTable

from giveaway_bot import ActivityConfig, ActivityKind, ActivityLedger, PersistenceError
from giveaway_bot.activity import VoiceSessionTracker
from giveaway_bot.models import MS_PER_DAY, MS_PER_MINUTE, ActivityRecord
from giveaway_bot.validation import ValidationError


@pytest.mark.asyncio
async def test_record_creates_and_increments(ledger, clock, table):
    first = await ledger.record("g", "u", ActivityKind.MESSAGE)
    clock.advance(1_000)
    second = await ledger.record("g", "u", ActivityKind.REACTION, 3)
    await ledger.record("g", "u", ActivityKind.VOICE_MINUTE, 7)

    assert first.message_count == 1
    assert second.reaction_count == 3
    record = ledger.get_record("g", "u")
    assert (record.message_count, record.reaction_count, record.voice_minutes) == (
        1,
        3,
        7,
    )
    assert record.last_update_ms == clock.now
    assert table.items[("GUILD#g", "ACTIVITY#u")]["voice_minutes"] == 7


@pytest.mark.asyncio
async def test_record_ignores_non_positive_amounts(ledger):
    assert await ledger.record("g", "u", ActivityKind.MESSAGE, 0) is None
    assert ledger.get_record("g", "u") is None


@pytest.mark.asyncio
async def test_records_are_scoped_per_server(ledger):
    for _ in range(50):
        await ledger.record("g1", "u", ActivityKind.MESSAGE)

    assert ledger.score("g1", "u") > 1.0
    assert ledger.score("g2", "u") == 1.0


def test_score_without_record_is_baseline(ledger):
    assert ledger.score("g", "nobody") == 1.0


@pytest.mark.asyncio
async def test_score_formula_and_decay(ledger, clock):
    await ledger.record("g", "u", ActivityKind.MESSAGE, 100)
    now = clock.now

    assert ledger.score("g", "u", now=now) == pytest.approx(2.5)
    assert ledger.score("g", "u", now=now + 15 * MS_PER_DAY) == pytest.approx(1.75)
    # Decay bottoms out at 10 percent.
    assert ledger.score("g", "u", now=now + 90 * MS_PER_DAY) == pytest.approx(1.15)


@pytest.mark.asyncio
async def test_score_ignores_future_timestamps(ledger, clock):
    await ledger.record("g", "u", ActivityKind.MESSAGE, 100)

    assert ledger.score("g", "u", now=clock.now - 10 * MS_PER_DAY) == pytest.approx(2.5)


@pytest.mark.asyncio
async def test_score_is_capped_by_max_bonus(ledger):
    await ledger.record("g", "u", ActivityKind.VOICE_MINUTE, 10_000)
    assert ledger.score("g", "u") == 5.0


@pytest.mark.asyncio
async def test_zero_multiplier_gives_baseline(ledger):
    await ledger.record("g", "u", ActivityKind.MESSAGE, 500)
    await ledger.update_config(activity_multiplier=0)
    assert ledger.score("g", "u") == 1.0


@pytest.mark.asyncio
async def test_update_config_persists_and_applies(ledger, table):
    config = await ledger.update_config(max_activity_bonus=3, reaction_point_value=None)

    assert config.max_activity_bonus == 3.0
    assert config.reaction_point_value == 0.5
    assert table.items[("CONFIG", "ACTIVITY")]["max_activity_bonus"] == "3.0"


@pytest.mark.asyncio
async def test_update_config_rejects_invalid_without_change(ledger, table):
    with pytest.raises(ValidationError):
        await ledger.update_config(activity_multiplier=2, activity_decay_days=0)

    assert ledger.config == ActivityConfig()
    assert ("CONFIG", "ACTIVITY") not in table.items


@pytest.mark.asyncio
async def test_update_config_empty_patch_is_noop(ledger, table):
    config = await ledger.update_config()
    assert config == ActivityConfig()
    assert table.put_calls == 0


@pytest.mark.asyncio
async def test_failed_write_keeps_previous_record(ledger, table):
    await ledger.record("g", "u", ActivityKind.MESSAGE)
    table.fail_writes = True

    with pytest.raises(PersistenceError):
        await ledger.record("g", "u", ActivityKind.MESSAGE)

    assert ledger.get_record("g", "u").message_count == 1


@pytest.mark.asyncio
async def test_load_restores_config_and_records(clock):
    table = FakeTable(page_size=1)
    table.put_item(Item=ActivityConfig(activity_multiplier=3.0).to_item())
    table.put_item(
        Item=ActivityRecord("g", "a", message_count=5, last_update_ms=1).to_item()
    )
    table.put_item(
        Item=ActivityRecord("g", "b", reaction_count=2, last_update_ms=1).to_item()
    )
    table.put_item(Item={"pk": "GIVEAWAY#1", "sk": "META"})

    ledger = ActivityLedger(table, clock=clock)
    loaded = await ledger.load()

    assert loaded == 2
    assert ledger.config.activity_multiplier == 3.0
    assert ledger.get_record("g", "a").message_count == 5
    assert ledger.get_record("g", "b").reaction_count == 2


@pytest.mark.asyncio
async def test_ledger_without_table_keeps_memory_only(clock):
    ledger = ActivityLedger(None, clock=clock)
    assert await ledger.load() == 0
    await ledger.record("g", "u", ActivityKind.MESSAGE)
    assert ledger.get_record("g", "u").message_count == 1


class TestVoiceSessionTracker:
    def test_leave_returns_whole_minutes(self):
        tracker = VoiceSessionTracker()
        tracker.join("g", "u", 0)

        assert tracker.is_tracking("g", "u")
        assert tracker.leave("g", "u", 2 * MS_PER_MINUTE + 59_000) == 2
        assert not tracker.is_tracking("g", "u")

    def test_leave_without_join_is_zero(self):
        assert VoiceSessionTracker().leave("g", "u", 10 * MS_PER_MINUTE) == 0

    def test_join_twice_keeps_first_start(self):
        tracker = VoiceSessionTracker()
        tracker.join("g", "u", 0)
        tracker.join("g", "u", 5 * MS_PER_MINUTE)
        assert tracker.leave("g", "u", 6 * MS_PER_MINUTE) == 6

    def test_flush_keeps_partial_minutes(self):
        tracker = VoiceSessionTracker()
        tracker.join("g", "u", 0)
        tracker.join("g", "v", 4 * MS_PER_MINUTE)

        accrued = tracker.flush(5 * MS_PER_MINUTE + 30_000)
        assert sorted(accrued) == [("g", "u", 5), ("g", "v", 1)]

        # The 30 second remainder is still counted on leave.
        assert tracker.leave("g", "u", 6 * MS_PER_MINUTE) == 1
        assert tracker.is_tracking("g", "v")


async def _assert_monotonic_and_bounded(ledger, now: int) -> None:
    cfg = ledger.config
    previous = ledger.score("g", "u", now=now)
    assert 1.0 <= previous <= cfg.max_activity_bonus
    for amount in (1, 3, 10, 40, 150, 600, 2500):
        for kind in ActivityKind:
            await ledger.record("g", "u", kind, amount)
            current = ledger.score("g", "u", now=now)
            assert current >= previous
            assert 1.0 <= current <= cfg.max_activity_bonus
            previous = current


@pytest.mark.asyncio
@pytest.mark.parametrize("offset_days", [0, -3, 12, 45])
async def test_score_grows_with_counters_and_stays_bounded(ledger, clock, offset_days):
    await _assert_monotonic_and_bounded(ledger, clock.now + offset_days * MS_PER_DAY)


@pytest.mark.asyncio
async def test_score_bounds_hold_after_config_changes(ledger, clock):
    await ledger.update_config(
        activity_multiplier=4.0, max_activity_bonus=2.5, activity_decay_days=7
    )
    await _assert_monotonic_and_bounded(ledger, clock.now + 2 * MS_PER_DAY)

    await ledger.update_config(max_activity_bonus=1.0)
    assert ledger.score("g", "u") == 1.0
