from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Sequence, Union

import pytest
from sqlalchemy import func, select

from meterdash.models.database import MeterReading, MeteringPoint, User
from meterdash.models.schemas.mojelektro import MeterReadingsResponse
from meterdash.processors.mojelektro_client import MojElektroAPIError
from meterdash.services import ingestion
from meterdash.services.ingestion import (
    DayOutcome,
    IngestionConfigError,
    ingest,
    insert_readings,
    iter_days,
    parse_interval_readings,
    select_interval_block,
)

GSRN = "123456789012345678"
CODE = "32.0.2.4.1.2.12.0.0.0.0.0.0.0.0.3.72.0"
OWNER = "seed@localhost"


def day_payload(day: date, values: Sequence[Any], code: str = CODE) -> Dict[str, Any]:
    """Interval block with one entry per value, 15 minutes apart from local midnight."""
    start = datetime(day.year, day.month, day.day)
    return {
        "usagePoint": GSRN,
        "intervalBlocks": [
            {
                "readingType": code,
                "intervalReadings": [
                    {"timestamp": (start + timedelta(minutes=15 * i)).isoformat() + "Z", "value": v}
                    for i, v in enumerate(values)
                ],
            }
        ],
    }


class FakeSource:
    """Serves canned responses per window start; an Exception value is raised."""

    def __init__(self, days: Dict[str, Union[Dict[str, Any], Exception]]):
        self.days = days
        self.calls: List[Dict[str, Any]] = []

    async def get_meter_readings(
        self,
        usage_point: str,
        start_time: str,
        end_time: str,
        options: Optional[Sequence[str]] = None,
    ) -> MeterReadingsResponse:
        self.calls.append(
            {"usage_point": usage_point, "start_time": start_time, "end_time": end_time, "options": options}
        )
        payload = self.days.get(start_time, {"usagePoint": usage_point, "intervalBlocks": []})
        if isinstance(payload, Exception):
            raise payload
        return MeterReadingsResponse.model_validate(payload)


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


async def count_readings(database) -> int:
    async with database.session() as session:
        return (await session.execute(select(func.count()).select_from(MeterReading))).scalar_one()


async def run(database, source, start: date, end: date, **kwargs):
    kwargs.setdefault("sleep", RecordingSleep())
    return await ingest(
        source,
        database,
        GSRN,
        CODE,
        start,
        end,
        owner_email=OWNER,
        owner_name="Seed",
        **kwargs,
    )


class TestIngest:
    async def test_ingests_each_day_and_creates_owner_and_metering_point(self, database):
        source = FakeSource({
            "2025-04-11": day_payload(date(2025, 4, 11), [0.25, 0.5]),
            "2025-04-12": day_payload(date(2025, 4, 12), [1.0]),
        })

        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 12))

        assert summary.inserted == 3
        assert summary.succeeded == 2
        assert summary.failed == 0
        assert await count_readings(database) == 3

        async with database.session() as session:
            user = (await session.execute(select(User))).scalar_one()
            point = await session.get(MeteringPoint, GSRN)
        assert user.email == OWNER
        assert point.user_id == user.id
        assert point.name == "Metering Point 5678"

    async def test_requests_one_day_window_per_day(self, database):
        source = FakeSource({})

        await run(database, source, date(2025, 4, 30), date(2025, 5, 1))

        assert [(c["start_time"], c["end_time"]) for c in source.calls] == [
            ("2025-04-30", "2025-05-01"),
            ("2025-05-01", "2025-05-02"),
        ]
        assert all(c["usage_point"] == GSRN for c in source.calls)
        assert all(c["options"] == [f"ReadingType={CODE}"] for c in source.calls)

    async def test_rerun_over_same_range_inserts_nothing(self, database):
        source = FakeSource({
            "2025-04-11": day_payload(date(2025, 4, 11), [0.25, 0.5, 0.75]),
        })

        first = await run(database, source, date(2025, 4, 11), date(2025, 4, 11))
        second = await run(database, source, date(2025, 4, 11), date(2025, 4, 11))

        assert first.inserted == 3
        assert second.inserted == 0
        assert second.days[0].outcome == DayOutcome.INGESTED
        assert second.days[0].fetched == 3
        assert await count_readings(database) == 3

    async def test_duplicate_entries_in_one_payload_are_stored_once(self, database):
        payload = day_payload(date(2025, 4, 11), [0.25])
        entries = payload["intervalBlocks"][0]["intervalReadings"]
        entries.append(dict(entries[0]))
        source = FakeSource({"2025-04-11": payload})

        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 11))

        assert summary.inserted == 1
        assert await count_readings(database) == 1

    async def test_overlapping_run_only_adds_new_readings(self, database):
        source = FakeSource({
            "2025-04-11": day_payload(date(2025, 4, 11), [0.25, 0.5]),
            "2025-04-12": day_payload(date(2025, 4, 12), [1.0, 2.0]),
        })

        await run(database, source, date(2025, 4, 11), date(2025, 4, 11))
        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 12))

        assert [d.inserted for d in summary.days] == [0, 2]
        assert await count_readings(database) == 4

    async def test_malformed_entries_are_dropped(self, database):
        payload = day_payload(date(2025, 4, 11), [0.25, 0.5])
        payload["intervalBlocks"][0]["intervalReadings"] += [
            {"timestamp": "2025-04-11T01:00:00Z"},
            {"value": 3.0},
            {"timestamp": "not a timestamp", "value": 1.0},
            "garbage",
        ]
        source = FakeSource({"2025-04-11": payload})

        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 11))

        (day,) = summary.days
        assert day.outcome == DayOutcome.INGESTED
        assert day.dropped == 4
        assert day.inserted == 2

    async def test_fetch_failure_on_one_day_does_not_stop_the_run(self, database):
        days = {
            (date(2025, 4, 11) + timedelta(days=i)).isoformat(): day_payload(date(2025, 4, 11) + timedelta(days=i), [1.0])
            for i in range(5)
        }
        days["2025-04-13"] = MojElektroAPIError("Internal error", code=500, status_code=500)
        source = FakeSource(days)

        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 15))

        assert len(source.calls) == 5
        assert [d.outcome for d in summary.days] == [
            DayOutcome.INGESTED,
            DayOutcome.INGESTED,
            DayOutcome.FETCH_FAILED,
            DayOutcome.INGESTED,
            DayOutcome.INGESTED,
        ]
        assert summary.failed == 1
        assert summary.inserted == 4
        assert "Internal error" in summary.days[2].error
        assert summary.to_dict()["failed_days"] == [
            {"day": "2025-04-13", "outcome": "fetch_failed", "error": "API Error (500): Internal error"}
        ]

    async def test_failed_day_is_filled_in_by_a_later_run(self, database):
        days = {
            "2025-04-11": day_payload(date(2025, 4, 11), [1.0]),
            "2025-04-12": RuntimeError("connection reset"),
        }
        source = FakeSource(days)
        await run(database, source, date(2025, 4, 11), date(2025, 4, 12))

        days["2025-04-12"] = day_payload(date(2025, 4, 12), [2.0, 3.0])
        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 12))

        assert [d.inserted for d in summary.days] == [0, 2]
        assert await count_readings(database) == 3

    async def test_store_failure_is_recorded_and_loop_continues(self, database, monkeypatch):
        real_insert = ingestion.insert_readings
        calls = {"n": 0}

        async def flaky_insert(session, rows):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("disk full")
            return await real_insert(session, rows)

        monkeypatch.setattr(ingestion, "insert_readings", flaky_insert)
        source = FakeSource({
            "2025-04-11": day_payload(date(2025, 4, 11), [1.0, 2.0]),
            "2025-04-12": day_payload(date(2025, 4, 12), [3.0]),
        })

        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 12))

        assert summary.days[0].outcome == DayOutcome.STORE_FAILED
        assert summary.days[0].fetched == 2
        assert summary.days[0].error == "disk full"
        assert summary.days[1].outcome == DayOutcome.INGESTED
        assert await count_readings(database) == 1

    async def test_days_without_matching_block_are_skipped(self, database):
        source = FakeSource({
            "2025-04-11": day_payload(date(2025, 4, 11), [1.0], code="some.other.code"),
            "2025-04-12": {"usagePoint": GSRN, "intervalBlocks": [{"readingType": CODE, "intervalReadings": []}]},
            "2025-04-13": {},
        })

        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 13))

        assert [d.outcome for d in summary.days] == [DayOutcome.EMPTY] * 3
        assert summary.skipped == 3
        assert summary.failed == 0
        assert await count_readings(database) == 0

    async def test_timestamps_with_offset_are_stored_in_utc(self, database):
        source = FakeSource({
            "2025-04-11": {
                "intervalBlocks": [
                    {
                        "readingType": CODE,
                        "intervalReadings": [{"timestamp": "2025-04-11T00:15:00+02:00", "value": "0.042"}],
                    }
                ]
            }
        })

        await run(database, source, date(2025, 4, 11), date(2025, 4, 11))

        async with database.session() as session:
            stored = (await session.execute(select(MeterReading))).scalar_one()
        assert stored.timestamp.replace(tzinfo=None) == datetime(2025, 4, 10, 22, 15)
        assert stored.value == Decimal("0.042")
        assert stored.reading_type_code == CODE

    async def test_sleeps_between_days_only(self, database):
        sleep = RecordingSleep()

        await run(database, FakeSource({}), date(2025, 4, 11), date(2025, 4, 14), delay_seconds=0.5, sleep=sleep)

        assert sleep.delays == [0.5, 0.5, 0.5]

    async def test_zero_delay_never_sleeps(self, database):
        sleep = RecordingSleep()

        await run(database, FakeSource({}), date(2025, 4, 11), date(2025, 4, 14), delay_seconds=0, sleep=sleep)

        assert sleep.delays == []

    async def test_start_after_end_fetches_nothing(self, database):
        source = FakeSource({})

        summary = await run(database, source, date(2025, 4, 12), date(2025, 4, 11))

        assert source.calls == []
        assert summary.days == []

    @pytest.mark.parametrize(
        ("gsrn", "code", "email"),
        [("", CODE, OWNER), (GSRN, "", OWNER), (GSRN, CODE, "")],
    )
    async def test_missing_configuration_fails_before_fetching(self, database, gsrn, code, email):
        source = FakeSource({})

        with pytest.raises(IngestionConfigError):
            await ingest(source, database, gsrn, code, date(2025, 4, 11), date(2025, 4, 11), owner_email=email)

        assert source.calls == []


class TestHelpers:
    def test_iter_days_is_inclusive(self):
        assert list(iter_days(date(2025, 2, 27), date(2025, 3, 2))) == [
            date(2025, 2, 27),
            date(2025, 2, 28),
            date(2025, 3, 1),
            date(2025, 3, 2),
        ]

    def test_select_interval_block_picks_matching_code(self):
        response = MeterReadingsResponse.model_validate({
            "intervalBlocks": [
                {"readingType": "a", "intervalReadings": [{"timestamp": "2025-04-11T00:00:00Z", "value": 1}]},
                {"readingType": "b", "intervalReadings": [{"timestamp": "2025-04-11T00:00:00Z", "value": 2}]},
            ]
        })

        block = select_interval_block(response, "b")

        assert block.reading_type == "b"
        assert select_interval_block(response, "c") is None
        assert select_interval_block(None, "b") is None

    def test_parse_interval_readings_counts_dropped(self):
        readings, dropped = parse_interval_readings([
            {"timestamp": "2025-04-11T00:00:00Z", "value": "1.5"},
            {"timestamp": None, "value": "1"},
            None,
        ])

        assert [r.value for r in readings] == [Decimal("1.5")]
        assert dropped == 2

    async def test_insert_refuses_dialect_without_skip_on_duplicate(self):
        class MySQLSession:
            def get_bind(self):
                return SimpleNamespace(dialect=SimpleNamespace(name="mysql"))

        rows = [{"timestamp": datetime(2025, 4, 11), "value": Decimal("1")}]

        with pytest.raises(NotImplementedError, match="'mysql'"):
            await insert_readings(MySQLSession(), rows)

    async def test_unsupported_dialect_fails_the_day_not_the_run(self, database, monkeypatch):
        monkeypatch.setattr(ingestion, "UPSERT_INSERTS", {"postgresql": ingestion.pg_insert})
        source = FakeSource({"2025-04-11": day_payload(date(2025, 4, 11), [1.0])})

        summary = await run(database, source, date(2025, 4, 11), date(2025, 4, 12))

        assert summary.days[0].outcome == DayOutcome.STORE_FAILED
        assert "'sqlite'" in summary.days[0].error
        assert summary.days[1].outcome == DayOutcome.EMPTY
