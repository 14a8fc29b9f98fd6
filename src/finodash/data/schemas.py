"""Entity schemas for the application data document.

Field names are snake_case in Python and camelCase in the persisted JSON.
Unknown fields found in persisted records are kept so a round trip through the
reactive store never drops data written by a newer client.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

logger = structlog.get_logger()

DEFAULT_CONTRIBUTION_RATE = 0.1
LIST_FIELDS = ("users", "merchants", "purchases", "notifications")


class NotificationType(str, Enum):
    APPROVAL = "approval"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class DataStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Record(BaseModel):
    """Base for persisted entities."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str

    def to_blob(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class User(Record):
    name: str = ""
    email: str = ""
    phone: str = ""
    points: int = Field(0, ge=0)
    password: str = ""
    registration_date: str | None = None


class Merchant(Record):
    store_name: str = ""
    owner: str = ""
    email: str = ""
    password: str = ""
    phone: str | None = None
    address: str | None = None
    registration_date: str | None = None
    status: str = "active"


class Purchase(Record):
    customer_id: str
    merchant_id: str
    amount: float = 0.0
    approved: bool = False
    category: str = ""
    date: str = ""


class Notification(Record):
    text: str
    type: NotificationType = NotificationType.INFO
    timestamp: str | None = None


class AppData(BaseModel):
    """The full ``app-data`` document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    users: list[User] = Field(default_factory=list)
    merchants: list[Merchant] = Field(default_factory=list)
    purchases: list[Purchase] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
    points: dict[str, int] = Field(default_factory=dict)
    contribution_rate: float = DEFAULT_CONTRIBUTION_RATE

    def to_blob(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# Persisted list key -> record model
_RECORD_FIELDS: dict[str, type[Record]] = {
    "users": User,
    "merchants": Merchant,
    "purchases": Purchase,
    "notifications": Notification,
}

_POINTS = TypeAdapter(int)
_RATE = TypeAdapter(float)


def _parse_records(key: str, items: Any, model: type[Record]) -> list[Record] | None:
    if not isinstance(items, list):
        logger.warning("durable_field_invalid", field=key, kind=type(items).__name__)
        return None
    records = []
    for index, item in enumerate(items):
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "durable_record_invalid",
                field=key,
                index=index,
                record_id=item.get("id") if isinstance(item, dict) else None,
                errors=exc.error_count(),
            )
    return records


def _parse_points(items: Any) -> dict[str, int] | None:
    if not isinstance(items, dict):
        logger.warning("durable_field_invalid", field="points", kind=type(items).__name__)
        return None
    points = {}
    for user_id, balance in items.items():
        try:
            points[str(user_id)] = _POINTS.validate_python(balance)
        except ValidationError:
            logger.warning("durable_points_invalid", user_id=user_id)
    return points


def parse_blob_fields(blob: dict[str, Any]) -> dict[str, Any]:
    """Validate a persisted document record by record.

    Returns ``{attribute: value}`` for every key that is present and not null.
    Invalid records and ledger entries are logged and dropped one at a time,
    so a single bad record never hides the valid ones next to it. A field
    whose container has the wrong shape is left out entirely and callers keep
    their current value for it.
    """
    parsed: dict[str, Any] = {}
    for key, model in _RECORD_FIELDS.items():
        if blob.get(key) is None:
            continue
        records = _parse_records(key, blob[key], model)
        if records is not None:
            parsed[key] = records

    if blob.get("points") is not None:
        points = _parse_points(blob["points"])
        if points is not None:
            parsed["points"] = points

    if blob.get("contributionRate") is not None:
        try:
            parsed["contribution_rate"] = _RATE.validate_python(blob["contributionRate"])
        except ValidationError:
            logger.warning("durable_field_invalid", field="contributionRate")
    return parsed
