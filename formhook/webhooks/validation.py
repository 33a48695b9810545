"""Completeness check for submission candidates."""

from __future__ import annotations

from collections.abc import Iterable

from formhook.models import SUBMISSION_FIELDS, MissingFields, NormalizedSubmission


def _is_missing(value: str | None) -> bool:
    return value is None or not str(value).strip()


class Validator:
    """Reports every missing field, not just the first one.

    ``required`` selects which missing fields reject the candidate; the report
    always covers all four.
    """

    def __init__(self, required: Iterable[str] = SUBMISSION_FIELDS):
        self.required = tuple(required)
        unknown = set(self.required) - set(SUBMISSION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown submission fields: {sorted(unknown)}")

    def validate(self, candidate: NormalizedSubmission) -> NormalizedSubmission | MissingFields:
        """Return the candidate when complete, else the per-field report."""
        report = MissingFields(
            **{f: _is_missing(getattr(candidate, f, None)) for f in SUBMISSION_FIELDS}
        )
        if any(getattr(report, f) for f in self.required):
            return report
        return candidate
