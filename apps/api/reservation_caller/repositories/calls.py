"""Call repository with interchangeable volatile and SQL backends.

Every mutator funnels through ``_mutate`` which each backend implements as an
atomic read-modify-write for a single call id: the in-memory backend holds one
lock over its authoritative map, the SQL backend locks the row inside a
transaction. Mutators on an unknown id are no-ops returning ``False``.
"""
from __future__ import annotations

import abc
import asyncio
import json
import logging
import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings
from ..core.events import log_event
from ..models.call import Call
from ..schemas.calls import (
    CallOutcome,
    CallRecord,
    CallStatus,
    ReservationPatch,
    ReservationRequest,
    Speaker,
    TranscriptEntry,
)
from ..services.state_machine import can_transition
from ..services.transcript import append_entry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Mutation = Callable[[CallRecord, datetime], bool]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CallRepository(abc.ABC):
    """Async contract shared by all call stores."""

    def __init__(self, *, dedupe_window: timedelta = timedelta(seconds=15), clock: Clock = utc_now) -> None:
        self._dedupe_window = dedupe_window
        self._clock = clock

    async def create(self, request: ReservationRequest) -> CallRecord:
        """Create a call, or return the existing one for the same request id."""

        record, _ = await self.create_if_absent(request)
        return record

    @abc.abstractmethod
    async def create_if_absent(self, request: ReservationRequest) -> tuple[CallRecord, bool]:
        """Like ``create`` but also report whether a new record was written."""

    @abc.abstractmethod
    async def get(self, call_id: str) -> CallRecord | None:
        """Return a snapshot of the call or None."""

    @abc.abstractmethod
    async def list(self) -> list[CallRecord]:
        """Return all calls, most recently created first."""

    @abc.abstractmethod
    async def _mutate(self, call_id: str, apply: Mutation) -> bool:
        """Atomically load, mutate and persist one call."""

    async def update_status(self, call_id: str, status: CallStatus) -> bool:
        """Move a call to ``status`` when the lifecycle allows it."""

        def apply(record: CallRecord, now: datetime) -> bool:
            if not can_transition(record.status, status):
                log_event(
                    "call.status.transition_blocked",
                    logging.WARNING,
                    call_id=record.id,
                    from_status=record.status.value,
                    to_status=status.value,
                )
                return False
            record.status = status
            return True

        return await self._mutate(call_id, apply)

    async def force_status(
        self,
        call_id: str,
        status: CallStatus,
        *,
        expected_updated_at: datetime | None = None,
    ) -> bool:
        """Administrative override that skips transition validation.

        With ``expected_updated_at`` the override only applies when the call has
        not been touched since that timestamp.
        """

        def apply(record: CallRecord, now: datetime) -> bool:
            if expected_updated_at is not None and record.updated_at != expected_updated_at:
                return False
            if record.status != status:
                log_event("call.status.forced", call_id=record.id, from_status=record.status.value, to_status=status.value)
            record.status = status
            return True

        return await self._mutate(call_id, apply)

    async def append_transcript(self, call_id: str, speaker: Speaker, text: str) -> bool:
        window = self._dedupe_window

        def apply(record: CallRecord, now: datetime) -> bool:
            return append_entry(record.transcript, speaker, text, now, window)

        return await self._mutate(call_id, apply)

    async def set_outcome(self, call_id: str, outcome: CallOutcome) -> bool:
        def apply(record: CallRecord, now: datetime) -> bool:
            record.outcome = outcome.model_copy(deep=True)
            return True

        return await self._mutate(call_id, apply)

    async def update_reservation(self, call_id: str, patch: ReservationPatch) -> bool:
        changes = patch.model_dump(exclude_none=True)

        def apply(record: CallRecord, now: datetime) -> bool:
            record.reservation = record.reservation.model_copy(update=changes)
            return True

        return await self._mutate(call_id, apply)

    async def attach_telephony_ref(self, call_id: str, ref: str) -> bool:
        def apply(record: CallRecord, now: datetime) -> bool:
            record.telephony_ref = ref
            return True

        return await self._mutate(call_id, apply)

    def _new_record(self, request: ReservationRequest) -> CallRecord:
        call_id = request.request_id or str(uuid4())
        now = self._clock()
        return CallRecord(
            id=call_id,
            reservation=request.model_copy(update={"request_id": call_id}, deep=True),
            status=CallStatus.INIT,
            created_at=now,
            updated_at=now,
            transcript=[TranscriptEntry(at=now, speaker=Speaker.SYSTEM, text="Call created")],
        )


class InMemoryCallRepository(CallRepository):
    """Process-local store optionally mirrored to a JSON file."""

    def __init__(self, data_file: str | os.PathLike[str] | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._calls: dict[str, CallRecord] = {}
        self._lock = asyncio.Lock()
        self._path = Path(data_file) if data_file else None
        self._load()

    async def create_if_absent(self, request: ReservationRequest) -> tuple[CallRecord, bool]:
        async with self._lock:
            if request.request_id and request.request_id in self._calls:
                return self._calls[request.request_id].model_copy(deep=True), False
            record = self._new_record(request)
            self._calls[record.id] = record
            try:
                self._persist()
            except OSError:
                del self._calls[record.id]
                raise
            return record.model_copy(deep=True), True

    async def get(self, call_id: str) -> CallRecord | None:
        record = self._calls.get(call_id)
        return record.model_copy(deep=True) if record else None

    async def list(self) -> list[CallRecord]:
        records = sorted(self._calls.values(), key=lambda item: item.created_at, reverse=True)
        return [record.model_copy(deep=True) for record in records]

    async def _mutate(self, call_id: str, apply: Mutation) -> bool:
        async with self._lock:
            current = self._calls.get(call_id)
            if current is None:
                return False
            working = current.model_copy(deep=True)
            now = self._clock()
            if not apply(working, now):
                return False
            working.updated_at = now
            self._calls[call_id] = working
            try:
                self._persist()
            except OSError:
                self._calls[call_id] = current
                raise
            return True

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        raw = self._path.read_text(encoding="utf-8")
        if not raw.strip():
            return
        for item in json.loads(raw):
            record = CallRecord.model_validate(item)
            self._calls[record.id] = record
        logger.info("Loaded %d calls from %s", len(self._calls), self._path)

    def _persist(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [record.model_dump(mode="json") for record in self._calls.values()]
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)


class SqlCallRepository(CallRepository):
    """Relational store; each mutation runs in its own transaction on a locked row."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], **kwargs) -> None:
        super().__init__(**kwargs)
        self._sessionmaker = sessionmaker

    async def create_if_absent(self, request: ReservationRequest) -> tuple[CallRecord, bool]:
        if request.request_id:
            existing = await self.get(request.request_id)
            if existing is not None:
                return existing, False

        record = self._new_record(request)
        created = True
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    session.add(_record_to_row(record))
        except IntegrityError:
            logger.info("Concurrent create for call %s; returning stored record", record.id)
            created = False

        stored = await self.get(record.id)
        if stored is None:
            raise RuntimeError(f"Failed to create call {record.id}")
        return stored, created

    async def get(self, call_id: str) -> CallRecord | None:
        async with self._sessionmaker() as session:
            row = await session.get(Call, call_id)
            return _row_to_record(row) if row is not None else None

    async def list(self) -> list[CallRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(select(Call).order_by(Call.created_at.desc()))
            return [_row_to_record(row) for row in result.scalars().all()]

    async def _mutate(self, call_id: str, apply: Mutation) -> bool:
        async with self._sessionmaker() as session:
            async with session.begin():
                stmt = select(Call).where(Call.id == call_id).with_for_update()
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    return False
                record = _row_to_record(row)
                now = self._clock()
                if not apply(record, now):
                    return False
                record.updated_at = now
                _copy_into_row(record, row)
                return True


def _ensure_tz(value: datetime) -> datetime:
    """Ensure the provided datetime is timezone-aware in UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _record_to_row(record: CallRecord) -> Call:
    row = Call(id=record.id, created_at=record.created_at)
    _copy_into_row(record, row)
    return row


def _copy_into_row(record: CallRecord, row: Call) -> None:
    dumped = record.model_dump(mode="json")
    row.reservation = dumped["reservation"]
    row.status = record.status.value
    row.updated_at = record.updated_at
    row.transcript = dumped["transcript"]
    row.outcome = dumped["outcome"]
    row.telephony_ref = record.telephony_ref


def _row_to_record(row: Call) -> CallRecord:
    return CallRecord.model_validate(
        {
            "id": row.id,
            "reservation": row.reservation,
            "status": row.status,
            "created_at": _ensure_tz(row.created_at),
            "updated_at": _ensure_tz(row.updated_at),
            "transcript": row.transcript or [],
            "outcome": row.outcome,
            "telephony_ref": row.telephony_ref,
        }
    )


def build_repository(config: Settings, *, clock: Clock = utc_now) -> CallRepository:
    """Pick the SQL backend when a database is configured, else the file-backed store."""

    window = timedelta(milliseconds=config.transcript_dedupe_window_ms)
    if config.has_database_config:
        from ..db.session import get_engine, make_sessionmaker

        return SqlCallRepository(make_sessionmaker(get_engine()), dedupe_window=window, clock=clock)
    return InMemoryCallRepository(config.data_file or None, dedupe_window=window, clock=clock)
