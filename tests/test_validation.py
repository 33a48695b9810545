"""Tests for submission completeness validation."""

from __future__ import annotations

import pytest

from formhook.models import MissingFields, NormalizedSubmission
from formhook.webhooks.validation import Validator

COMPLETE = NormalizedSubmission(
    name="Ana", email="a@x.com", message="hola", submitted_at="2024-01-01T00:00:00Z"
)


class TestValidator:
    def test_complete_passes_through(self):
        assert Validator().validate(COMPLETE) is COMPLETE

    def test_reports_every_missing_field(self):
        result = Validator().validate(NormalizedSubmission(name="Ana"))
        assert result == MissingFields(
            name=False, email=True, message=True, submitted_at=True
        )

    def test_whitespace_counts_as_missing(self):
        candidate = NormalizedSubmission(
            name="   ", email="a@x.com", message="hola", submitted_at="2024-01-01"
        )
        result = Validator().validate(candidate)
        assert isinstance(result, MissingFields)
        assert result.name is True
        assert result.email is False

    def test_wire_report_uses_camel_case(self):
        result = Validator().validate(NormalizedSubmission())
        assert result.to_wire() == {
            "name": True,
            "email": True,
            "message": True,
            "submittedAt": True,
        }

    def test_three_field_requirement(self):
        """A deployment may accept submissions without a date."""
        validator = Validator(required=("name", "email", "message"))
        candidate = NormalizedSubmission(name="Ana", email="a@x.com", message="hola")
        assert validator.validate(candidate) is candidate

    def test_report_still_covers_unrequired_fields(self):
        validator = Validator(required=("name",))
        result = validator.validate(NormalizedSubmission(email="a@x.com"))
        assert isinstance(result, MissingFields)
        assert result.submitted_at is True
        assert result.email is False

    def test_unknown_required_field_rejected(self):
        with pytest.raises(ValueError, match="phone"):
            Validator(required=("name", "phone"))
