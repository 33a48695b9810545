"""Payload normalization: raw webhook body -> NormalizedSubmission candidate.

Form senders are not under our control, and each sender configuration posts a
different body shape.  Extraction tries a closed, ordered set of shape
strategies and the first one that matches wins:

1. DIRECT              {"nombre": ..., "email": ..., "mensaje": ...}
2. WRAPPED_RAW         {"rawRequest": {...} | "<json text>"}
3. SUBMISSION_WRAPPER  {"formData": {...}} or {"submission": {...}}
4. KEYED_FIELDS        {"q3_nombre": ..., "q6_fecha": {"year": ..., ...}}
5. FIELD_ARRAY         [{"fieldName": "nombre", "value": ...}, ...]
6. FALLBACK            the body itself, read best-effort

Contract:
- extract() never raises; absent fields come back empty and the validator
  rejects them
- an undecodable rawRequest yields an empty candidate plus a typed
  parse_error, never an exception
- strategies are pure functions of (payload, rules)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from formhook.models import SUBMISSION_FIELDS, NormalizedSubmission

logger = logging.getLogger(__name__)


class Shape(str, Enum):
    """Payload shapes, in the order they are tried."""

    DIRECT = "direct"
    WRAPPED_RAW = "wrapped_raw"
    SUBMISSION_WRAPPER = "submission_wrapper"
    KEYED_FIELDS = "keyed_fields"
    FIELD_ARRAY = "field_array"
    FALLBACK = "fallback"


# Submission field -> accepted source keys, first non-empty wins
DEFAULT_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "nombre"),
    "email": ("email", "correo"),
    "message": ("message", "mensaje"),
    "submitted_at": ("submittedAt", "submitted_at", "fecha", "date"),
}

# JotForm-style question identifiers -> submission field.  These differ per
# form build, so deployments override them through settings.
DEFAULT_KEYED_FIELDS: dict[str, str] = {
    "q3_nombre": "name",
    "q4_email": "email",
    "q5_mensaje": "message",
    "q6_fecha": "submitted_at",
}

# Fields that identify a body as already being in direct shape
_IDENTIFYING_FIELDS = ("name", "email", "message")

_DATE_PARTS = ("year", "month", "day")
_NAME_PARTS = ("first", "last")


@dataclass(frozen=True)
class ExtractionRules:
    """Source key tables used by the shape strategies."""

    field_aliases: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_FIELD_ALIASES)
    )
    keyed_fields: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_KEYED_FIELDS)
    )
    raw_key: str = "rawRequest"
    wrapper_keys: tuple[str, ...] = ("formData", "submission")
    array_name_key: str = "fieldName"
    array_value_key: str = "value"


@dataclass(frozen=True)
class PartialRecord:
    """Fields a strategy found.  A key absent from ``fields`` was not present."""

    fields: dict[str, str] = field(default_factory=dict)
    parse_error: str | None = None


@dataclass(frozen=True)
class DecodedRaw:
    """Outcome of decoding a rawRequest value."""

    data: Mapping[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True)
class Extraction:
    """Result of extract(): the candidate and how it was obtained."""

    shape: Shape
    candidate: NormalizedSubmission
    parse_error: str | None = None
    date_defaulted: bool = False


Strategy = Callable[[Any, ExtractionRules], PartialRecord | None]


# ── Value coercion ────────────────────────────────────────────────────────


def _coerce(value: Any) -> str:
    """Scalar -> stripped text.  None and nested containers are empty."""
    if value is None or isinstance(value, (Mapping, list, tuple, set)):
        return ""
    return str(value).strip()


def _coerce_date(value: Any) -> str:
    """Date text, or a {year, month, day} mapping joined as YYYY-MM-DD."""
    if isinstance(value, Mapping):
        parts = [_coerce(value.get(part)) for part in _DATE_PARTS]
        return "-".join(parts) if all(parts) else ""
    return _coerce(value)


def _coerce_name(value: Any) -> str:
    # JotForm full-name widgets post {"first": ..., "last": ...}
    if isinstance(value, Mapping):
        parts = [_coerce(value.get(part)) for part in _NAME_PARTS]
        return " ".join(p for p in parts if p)
    return _coerce(value)


_COERCERS: dict[str, Callable[[Any], str]] = {
    "name": _coerce_name,
    "submitted_at": _coerce_date,
}


def _coerce_field(field_name: str, value: Any) -> str:
    return _COERCERS.get(field_name, _coerce)(value)


def _collect(data: Mapping[str, Any], sources: Mapping[str, str]) -> dict[str, str]:
    """Read ``source key -> field`` pairs; the first non-empty value per field wins."""
    found: dict[str, str] = {}
    for source_key, field_name in sources.items():
        if source_key not in data:
            continue
        if not found.get(field_name):
            found[field_name] = _coerce_field(field_name, data[source_key])
    return found


def _read_direct(data: Mapping[str, Any], rules: ExtractionRules) -> dict[str, str]:
    sources = {
        alias: field_name
        for field_name, aliases in rules.field_aliases.items()
        for alias in aliases
    }
    return _collect(data, sources)


def _has_keyed(data: Mapping[str, Any], rules: ExtractionRules) -> bool:
    return any(identifier in data for identifier in rules.keyed_fields)


def _read_keyed(data: Mapping[str, Any], rules: ExtractionRules) -> dict[str, str]:
    return _collect(data, rules.keyed_fields)


def _read_inner(data: Mapping[str, Any], rules: ExtractionRules) -> dict[str, str]:
    """Read a wrapped mapping, which may itself use keyed identifiers."""
    if _has_keyed(data, rules):
        return _read_keyed(data, rules)
    return _read_direct(data, rules)


def decode_raw_request(value: Any) -> DecodedRaw:
    """Decode a rawRequest value into a mapping without raising."""
    if isinstance(value, Mapping):
        return DecodedRaw(data=value)
    if isinstance(value, (str, bytes, bytearray)):
        try:
            decoded = json.loads(value)
        # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized ints
        except (ValueError, RecursionError) as e:
            return DecodedRaw(error=f"rawRequest is not valid JSON: {e}")
        if not isinstance(decoded, Mapping):
            return DecodedRaw(error="rawRequest does not encode an object")
        return DecodedRaw(data=decoded)
    return DecodedRaw(error=f"rawRequest has unsupported type {type(value).__name__}")


# ── Shape strategies ──────────────────────────────────────────────────────


def direct_shape(raw: Any, rules: ExtractionRules) -> PartialRecord | None:
    if not isinstance(raw, Mapping):
        return None
    found = _read_direct(raw, rules)
    if all(found.get(f) for f in _IDENTIFYING_FIELDS):
        return PartialRecord(found)
    return None


def wrapped_raw_shape(raw: Any, rules: ExtractionRules) -> PartialRecord | None:
    if not isinstance(raw, Mapping) or not raw.get(rules.raw_key):
        return None
    decoded = decode_raw_request(raw[rules.raw_key])
    if decoded.error is not None:
        return PartialRecord(parse_error=decoded.error)
    return PartialRecord(_read_inner(decoded.data, rules))


def submission_wrapper_shape(raw: Any, rules: ExtractionRules) -> PartialRecord | None:
    if not isinstance(raw, Mapping):
        return None
    for key in rules.wrapper_keys:
        inner = raw.get(key)
        if isinstance(inner, Mapping) and inner:
            return PartialRecord(_read_inner(inner, rules))
    return None


def keyed_fields_shape(raw: Any, rules: ExtractionRules) -> PartialRecord | None:
    if not isinstance(raw, Mapping) or not _has_keyed(raw, rules):
        return None
    return PartialRecord(_read_keyed(raw, rules))


def field_array_shape(raw: Any, rules: ExtractionRules) -> PartialRecord | None:
    if isinstance(raw, (str, bytes, bytearray, Mapping)) or not isinstance(raw, Sequence):
        return None
    folded: dict[str, Any] = {}
    for item in raw:
        if isinstance(item, Mapping) and rules.array_name_key in item:
            folded[str(item[rules.array_name_key])] = item.get(rules.array_value_key)
    _, record = _resolve(folded, rules, _MAPPING_STRATEGIES)
    return record


def fallback_shape(raw: Any, rules: ExtractionRules) -> PartialRecord:
    if not isinstance(raw, Mapping):
        return PartialRecord()
    return PartialRecord(_read_direct(raw, rules))


_MAPPING_STRATEGIES: tuple[tuple[Shape, Strategy], ...] = (
    (Shape.DIRECT, direct_shape),
    (Shape.WRAPPED_RAW, wrapped_raw_shape),
    (Shape.SUBMISSION_WRAPPER, submission_wrapper_shape),
    (Shape.KEYED_FIELDS, keyed_fields_shape),
)

_STRATEGIES: tuple[tuple[Shape, Strategy], ...] = _MAPPING_STRATEGIES + (
    (Shape.FIELD_ARRAY, field_array_shape),
)


def _resolve(
    raw: Any,
    rules: ExtractionRules,
    strategies: tuple[tuple[Shape, Strategy], ...],
) -> tuple[Shape, PartialRecord]:
    for shape, strategy in strategies:
        record = strategy(raw, rules)
        if record is not None:
            return shape, record
    return Shape.FALLBACK, fallback_shape(raw, rules)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FieldExtractor:
    """Turns any RawPayload into a NormalizedSubmission candidate."""

    def __init__(
        self,
        rules: ExtractionRules | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.rules = rules or ExtractionRules()
        self._clock = clock or _utcnow

    def extract(self, raw: Any) -> Extraction:
        """Apply the first matching shape strategy.  Never raises.

        When the matched shape carries no date field at all, ``submitted_at``
        is stamped with the processing time.
        """
        shape, record = _resolve(raw, self.rules, _STRATEGIES)

        if record.parse_error is not None:
            logger.warning("Unreadable %s payload: %s", shape.value, record.parse_error)
            return Extraction(
                shape=shape,
                candidate=NormalizedSubmission(),
                parse_error=record.parse_error,
            )

        found = dict(record.fields)
        date_defaulted = "submitted_at" not in found
        if date_defaulted:
            found["submitted_at"] = self._clock().isoformat()

        candidate = NormalizedSubmission(**{f: found.get(f, "") for f in SUBMISSION_FIELDS})
        return Extraction(shape=shape, candidate=candidate, date_defaulted=date_defaulted)
