"""
Shared schema pieces: error body, pagination and date parsing for query strings.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from eventhub.core.exceptions import ValidationError
from eventhub.db.base import as_utc, utcnow

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ApiError(BaseModel):
    status: str
    reason: str
    message: str
    errors: list[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: utcnow().strftime(DATE_FORMAT))


class Page(BaseModel):
    """Offset pagination: `from` is an offset, `size` a page length."""

    offset: int = 0
    limit: int = 10

    @classmethod
    def of(cls, from_: Optional[int], size: Optional[int], default_size: int = 10) -> "Page":
        offset = from_ if from_ is not None and from_ > 0 else 0
        limit = size if size is not None and size > 0 else default_size
        return cls(offset=offset, limit=limit)

    def slice(self, items: list) -> list:
        return items[self.offset:self.offset + self.limit]


def parse_query_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    """Accept `YYYY-MM-DD HH:MM:SS` or ISO-8601; naive values are UTC."""
    if value is None or value == "":
        return None
    try:
        parsed = datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"Field: {field}. Error: unparsable date. Value: {value}")
    return as_utc(parsed)


def validate_range(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and start > end:
        raise ValidationError("range_start must not be after range_end")
