"""
Shared model plumbing.

Python attributes are snake_case. The local store keeps the camelCase
JSON shape the web client wrote (``paymentMethod``, ``targetCategory``),
so every model carries a camelCase alias and accepts either spelling on
input. Remote rows use the snake_case field names directly.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so stored and queried timestamps compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    """Base model with camelCase aliases for local-store JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_local(self) -> dict[str, Any]:
        """JSON-ready dict in the local store (camelCase) shape."""
        return self.model_dump(mode="json", by_alias=True)

    def to_row(self) -> dict[str, Any]:
        """JSON-ready dict in the remote row (snake_case) shape."""
        return self.model_dump(mode="json")
