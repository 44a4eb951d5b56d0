"""
Day-by-day ingestion of interval readings from the Moj Elektro API.

The loop fetches one day at a time, keeps the interval block matching the
requested reading type, drops malformed entries and bulk inserts the rest
with skip-on-duplicate semantics. A failing day is recorded in the summary
and the loop moves on; re-running over an ingested range inserts nothing.
"""
import asyncio
import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from meterdash.core.config import ConfigurationError
from meterdash.core.database import Database
from meterdash.core.logging import get_logger
from meterdash.core.metrics import ingestion_days_total, meter_readings_inserted_total
from meterdash.models.database.meter_readings import MeterReading
from meterdash.models.database.metering_points import MeteringPoint
from meterdash.models.database.users import User
from meterdash.models.schemas.mojelektro import IntervalBlock, IntervalReading, MeterReadingsResponse

logger = get_logger(__name__)

UNIQUE_READING_COLUMNS = ["metering_point_id", "reading_type_code", "timestamp"]

# Dialects whose insert construct supports ON CONFLICT DO NOTHING ... RETURNING
UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class IngestionConfigError(ConfigurationError):
    """Required identifier missing; raised before any day is fetched."""


class DayOutcome(str, enum.Enum):
    """Result kind of one ingested day."""
    INGESTED = "ingested"
    EMPTY = "empty"
    FETCH_FAILED = "fetch_failed"
    STORE_FAILED = "store_failed"


@dataclass(frozen=True)
class DayResult:
    day: date
    outcome: DayOutcome
    fetched: int = 0
    dropped: int = 0
    inserted: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.outcome in (DayOutcome.FETCH_FAILED, DayOutcome.STORE_FAILED)


@dataclass
class IngestionSummary:
    """Per-day results of one ingestion run."""

    metering_point_id: str
    reading_type_code: str
    start_date: date
    end_date: date
    days: List[DayResult] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        """Readings newly persisted by this run."""
        return sum(result.inserted for result in self.days)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.days if result.outcome == DayOutcome.INGESTED)

    @property
    def skipped(self) -> int:
        return sum(1 for result in self.days if result.outcome == DayOutcome.EMPTY)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.days if result.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metering_point_id": self.metering_point_id,
            "reading_type_code": self.reading_type_code,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "days": len(self.days),
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "inserted": self.inserted,
            "failed_days": [
                {"day": result.day.isoformat(), "outcome": result.outcome.value, "error": result.error}
                for result in self.days if result.failed
            ],
        }


class ReadingSource(Protocol):
    async def get_meter_readings(
        self,
        usage_point: str,
        start_time: str,
        end_time: str,
        options: Optional[Sequence[str]] = None,
    ) -> MeterReadingsResponse:
        ...


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def select_interval_block(
    response: Optional[MeterReadingsResponse],
    reading_type_code: str,
) -> Optional[IntervalBlock]:
    """Return the first interval block tagged with the reading type, if any."""
    if response is None or not response.interval_blocks:
        return None
    for block in response.interval_blocks:
        if block.reading_type == reading_type_code:
            return block
    return None


def parse_interval_readings(entries: Optional[Sequence[Any]]) -> Tuple[List[IntervalReading], int]:
    """
    Validate raw interval entries one by one.

    Returns:
        Valid readings and the number of dropped entries (missing or
        unparseable timestamp or value)
    """
    readings: List[IntervalReading] = []
    dropped = 0
    for entry in entries or []:
        try:
            readings.append(IntervalReading.model_validate(entry))
        except ValidationError:
            dropped += 1
    return readings, dropped


def _to_utc(ts: datetime) -> datetime:
    # Timestamps without an offset are taken as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def build_reading_rows(
    readings: Sequence[IntervalReading],
    metering_point_id: str,
    reading_type_code: str,
    user_id: int,
) -> List[Dict[str, Any]]:
    """Map validated interval readings to `meter_readings` insert rows."""
    return [
        {
            "timestamp": _to_utc(reading.timestamp),
            "value": reading.value,
            "reading_type_code": reading_type_code,
            "quality": reading.reading_qualities,
            "metering_point_id": metering_point_id,
            "user_id": user_id,
        }
        for reading in readings
    ]


async def ensure_owner(session: AsyncSession, email: str, name: Optional[str] = None) -> User:
    """Find the owning account by email or create it."""
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, name=name)
        session.add(user)
        await session.flush()
        logger.info(f"Created owner account {email} (id={user.id})")
    return user


async def ensure_metering_point(session: AsyncSession, gsrn: str, user: User) -> MeteringPoint:
    """Find the metering point by GSRN or create it for `user`."""
    metering_point = await session.get(MeteringPoint, gsrn)
    if metering_point is None:
        metering_point = MeteringPoint(
            gsrn=gsrn,
            user_id=user.id,
            name=f"Metering Point {gsrn[-4:]}",
        )
        session.add(metering_point)
        await session.flush()
        logger.info(f"Created metering point {gsrn}")
    else:
        logger.info(f"Using existing metering point {gsrn} (user={metering_point.user_id})")
    return metering_point


async def insert_readings(session: AsyncSession, rows: List[Dict[str, Any]]) -> int:
    """
    Bulk insert reading rows, skipping those that already exist.

    Returns:
        Number of rows actually inserted
    """
    if not rows:
        return 0

    dialect = session.get_bind().dialect.name
    insert = UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(
            f"Skip-on-duplicate insert is not supported for the {dialect!r} dialect "
            f"(supported: {', '.join(sorted(UPSERT_INSERTS))})"
        )

    stmt = (
        insert(MeterReading)
        .values(rows)
        .on_conflict_do_nothing(index_elements=UNIQUE_READING_COLUMNS)
        .returning(MeterReading.id)
    )
    result = await session.execute(stmt)
    return len(result.scalars().all())


async def ingest_day(
    client: ReadingSource,
    database: Database,
    day: date,
    metering_point_id: str,
    reading_type_code: str,
    user_id: int,
) -> DayResult:
    """Fetch and store one day; every failure is returned, never raised."""
    window_start = day.isoformat()
    window_end = (day + timedelta(days=1)).isoformat()

    try:
        response = await client.get_meter_readings(
            usage_point=metering_point_id,
            start_time=window_start,
            end_time=window_end,
            options=[f"ReadingType={reading_type_code}"],
        )
    except Exception as e:
        logger.error(f"Error fetching readings for {window_start}: {e}")
        return DayResult(day=day, outcome=DayOutcome.FETCH_FAILED, error=str(e))

    block = select_interval_block(response, reading_type_code)
    if block is None or not block.interval_readings:
        logger.info(f"No interval readings for {reading_type_code} on {window_start}")
        return DayResult(day=day, outcome=DayOutcome.EMPTY)

    readings, dropped = parse_interval_readings(block.interval_readings)
    if dropped:
        logger.debug(f"Dropped {dropped} malformed interval entries on {window_start}")

    rows = build_reading_rows(readings, metering_point_id, reading_type_code, user_id)
    if not rows:
        return DayResult(day=day, outcome=DayOutcome.EMPTY, dropped=dropped)

    try:
        async with database.session() as session:
            inserted = await insert_readings(session, rows)
    except Exception as e:
        logger.error(f"Error inserting readings for {window_start}: {e}")
        return DayResult(
            day=day,
            outcome=DayOutcome.STORE_FAILED,
            fetched=len(rows),
            dropped=dropped,
            error=str(e),
        )

    logger.info(f"Inserted {inserted} of {len(rows)} readings for {window_start}")
    return DayResult(
        day=day,
        outcome=DayOutcome.INGESTED,
        fetched=len(rows),
        dropped=dropped,
        inserted=inserted,
    )


async def ingest(
    client: ReadingSource,
    database: Database,
    metering_point_id: str,
    reading_type_code: str,
    start_date: date,
    end_date: Optional[date] = None,
    *,
    owner_email: str,
    owner_name: Optional[str] = None,
    delay_seconds: float = 0.5,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> IngestionSummary:
    """
    Ingest readings for one metering point and reading type over a date range.

    Args:
        client: Remote reading source
        database: Reading store handle
        metering_point_id: GSRN of the metering point
        reading_type_code: Reading type to request and keep
        start_date: First day (inclusive)
        end_date: Last day (inclusive); defaults to today (UTC)
        owner_email: Account the metering point and readings belong to
        owner_name: Display name used when the account is created
        delay_seconds: Fixed pause between successive day fetches
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        Summary with one result per day

    Raises:
        IngestionConfigError: If the metering point or reading type is missing
    """
    if not metering_point_id:
        raise IngestionConfigError("Target GSRN is not configured (TARGET_GSRN).")
    if not reading_type_code:
        raise IngestionConfigError("Target reading type code is not configured (TARGET_READING_TYPE_CODE).")
    if not owner_email:
        raise IngestionConfigError("Owner account email is not configured (SEED_USER_EMAIL).")

    end_date = end_date or datetime.now(timezone.utc).date()
    summary = IngestionSummary(
        metering_point_id=metering_point_id,
        reading_type_code=reading_type_code,
        start_date=start_date,
        end_date=end_date,
    )
    if start_date > end_date:
        logger.warning(f"Start date {start_date} is after end date {end_date}; nothing to ingest")
        return summary

    async with database.session() as session:
        owner = await ensure_owner(session, owner_email, owner_name)
        await ensure_metering_point(session, metering_point_id, owner)
        owner_id = owner.id

    logger.info(
        f"Ingesting {reading_type_code} readings for {metering_point_id} "
        f"from {start_date.isoformat()} to {end_date.isoformat()}"
    )

    for index, day in enumerate(iter_days(start_date, end_date)):
        if index and delay_seconds > 0:
            await sleep(delay_seconds)

        result = await ingest_day(
            client=client,
            database=database,
            day=day,
            metering_point_id=metering_point_id,
            reading_type_code=reading_type_code,
            user_id=owner_id,
        )
        summary.days.append(result)

        ingestion_days_total.labels(outcome=result.outcome.value).inc()
        if result.inserted:
            meter_readings_inserted_total.labels(reading_type=reading_type_code).inc(result.inserted)

    logger.info(
        f"Ingestion finished: {summary.inserted} new readings, {summary.succeeded} days ingested, "
        f"{summary.skipped} empty, {summary.failed} failed",
        extra={"ingestion": summary.to_dict()},
    )
    return summary
