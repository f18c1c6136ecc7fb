"""ORM models.

Defines resource types, estimation factors, initiatives, the shirt-size
threshold table with its audit trail, and the small lookup tables (categories,
dropdown options, system settings) used by the estimation workflow.

Collection-shaped fields are stored as JSON text and decoded at the column
boundary by `LenientJSON`; business logic only ever sees lists and dicts.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import Date, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from estimator.database import Base

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how SQLite DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_token() -> str:
    return str(uuid.uuid4())


class ResourceCategory(str, Enum):
    LABOUR = "Labour"
    NON_LABOUR = "Non-Labour"


class JournalAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DUPLICATED_FROM = "duplicated_from"


class LenientJSON(TypeDecorator):
    """JSON stored as TEXT that decodes unreadable values to an empty container.

    Older data files hold hand-edited or truncated JSON in these columns; a bad
    value is logged and replaced rather than failing the whole request.
    """

    impl = Text
    cache_ok = True

    def __init__(self, container: type = dict) -> None:
        super().__init__()
        self.container = container

    def process_bind_param(self, value: Any, dialect) -> str:
        if value is None:
            value = self.container()
        return json.dumps(value, default=str)

    def process_result_value(self, value: Any, dialect) -> Any:
        if value is None or value == "":
            return self.container()
        try:
            decoded = json.loads(value)
        except (TypeError, ValueError):
            logger.warning("Discarding malformed JSON column value: %.80r", value)
            return self.container()
        if not isinstance(decoded, self.container):
            logger.warning("Discarding JSON column value of unexpected type %s", type(decoded).__name__)
            return self.container()
        return decoded


class ResourceType(Base):
    __tablename__ = "resource_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_token)
    name: Mapped[str] = mapped_column(String(120), unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    resource_category: Mapped[str] = mapped_column(String(20), default=ResourceCategory.LABOUR.value)
    resource_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    journal_entries: Mapped[list[dict]] = mapped_column(LenientJSON(list), default=list)


class EstimationFactor(Base):
    __tablename__ = "estimation_factors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_token)
    name: Mapped[str] = mapped_column(String(160), unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    hours_per_resource_type: Mapped[dict[str, float]] = mapped_column(LenientJSON(dict), default=dict)
    value_per_resource_type: Mapped[dict[str, float]] = mapped_column(LenientJSON(dict), default=dict)
    journal_entries: Mapped[list[dict]] = mapped_column(LenientJSON(list), default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Initiative(Base):
    __tablename__ = "initiatives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    custom_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str | None] = mapped_column(String(50), nullable=True)
    priority_num: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    estimation_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    classification: Mapped[str | None] = mapped_column(String(50), nullable=True)
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    out_of_scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    selected_factors: Mapped[list[dict]] = mapped_column(LenientJSON(list), default=list)
    manual_resources: Mapped[dict[str, Any]] = mapped_column(LenientJSON(dict), default=dict)
    computed_hours: Mapped[float] = mapped_column(Float, default=0)
    shirt_size: Mapped[str] = mapped_column(String(10), default="XS")
    journal_entries: Mapped[list[dict]] = mapped_column(LenientJSON(list), default=list)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    categories: Mapped[list[str]] = mapped_column(LenientJSON(list), default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ShirtSize(Base):
    __tablename__ = "shirt_sizes"

    size: Mapped[str] = mapped_column(String(10), primary_key=True)
    threshold_hours: Mapped[float] = mapped_column(Float)


class ShirtSizeAudit(Base):
    __tablename__ = "shirt_size_audit"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_token)
    action: Mapped[str] = mapped_column(String(30))
    old_data: Mapped[list[dict]] = mapped_column(LenientJSON(list), default=list)
    new_data: Mapped[list[dict]] = mapped_column(LenientJSON(list), default=list)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)


class DropdownOption(Base):
    __tablename__ = "dropdown_options"
    __table_args__ = (UniqueConstraint("category", "value"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(30))
    value: Mapped[str] = mapped_column(String(120))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(80), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
