"""Call model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Call(Base):
    """Persisted call record including its transcript and latest outcome."""

    __tablename__ = "calls"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    reservation: Mapped[dict] = mapped_column(JSONType, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transcript: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    outcome: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    telephony_ref: Mapped[str | None] = mapped_column(String, nullable=True)
