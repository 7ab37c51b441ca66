"""Create the database schema and import calls from the JSON file store."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path

from reservation_caller.core.config import settings
from reservation_caller.db.session import get_engine, init_models, make_sessionmaker
from reservation_caller.models.call import Call
from reservation_caller.schemas.calls import CallRecord


def load_file_calls(path: Path) -> list[CallRecord]:
	"""Read call records written by the file-backed repository."""

	if not path.exists():
		return []
	raw = path.read_text(encoding="utf-8").strip()
	if not raw:
		return []
	return [CallRecord.model_validate(item) for item in json.loads(raw)]


async def import_calls(records: list[CallRecord]) -> int:
	"""Insert or refresh each call row from its file snapshot."""

	SessionLocal = make_sessionmaker(get_engine())
	async with SessionLocal() as session:
		async with session.begin():
			for record in records:
				dumped = record.model_dump(mode="json")
				row = await session.get(Call, record.id)
				if row is None:
					row = Call(id=record.id, created_at=record.created_at)
					session.add(row)
				row.reservation = dumped["reservation"]
				row.status = record.status.value
				row.updated_at = record.updated_at
				row.transcript = dumped["transcript"]
				row.outcome = dumped["outcome"]
				row.telephony_ref = record.telephony_ref
	return len(records)


async def main() -> None:
	await init_models(get_engine())
	records = load_file_calls(Path(settings.data_file)) if settings.data_file else []
	imported = await import_calls(records)
	print(f"Database schema ensured; imported {imported} call(s) from {settings.data_file or 'nowhere'}.")


if __name__ == "__main__":
	asyncio.run(main())
