"""Form submission data models.

A NormalizedSubmission is the canonical four-field record derived from an
inbound webhook payload.  It is either complete (every field non-empty) or it
never reaches the store.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

# Field name -> wire (JSON) name
WIRE_NAMES: dict[str, str] = {
    "name": "name",
    "email": "email",
    "message": "message",
    "submitted_at": "submittedAt",
}

SUBMISSION_FIELDS: tuple[str, ...] = tuple(WIRE_NAMES)


@dataclass(frozen=True)
class NormalizedSubmission:
    """Candidate or validated submission.  Empty string means absent."""

    name: str = ""
    email: str = ""
    message: str = ""
    submitted_at: str = ""

    def to_wire(self) -> dict[str, str]:
        return {WIRE_NAMES[f.name]: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class MissingFields:
    """Per-field completeness report.  True means the field is missing."""

    name: bool = False
    email: bool = False
    message: bool = False
    submitted_at: bool = False

    @property
    def any_missing(self) -> bool:
        return any(getattr(self, f) for f in SUBMISSION_FIELDS)

    def to_wire(self) -> dict[str, bool]:
        return {WIRE_NAMES[f]: getattr(self, f) for f in SUBMISSION_FIELDS}


@dataclass(frozen=True)
class StoredRow:
    """A submission row as returned by the store, including its id."""

    id: int
    name: str
    email: str
    message: str
    submitted_at: datetime | str

    @staticmethod
    def from_row(row: dict[str, Any]) -> StoredRow:
        return StoredRow(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            message=row["message"],
            submitted_at=row["submitted_at"],
        )


@dataclass(frozen=True)
class StoreError:
    """Any persistence failure, with a diagnostic message."""

    message: str
