# Overview: Pytest coverage for payload validation and query parameter helpers.

from datetime import datetime

import pytest
from timebill.errors import ValidationError
from timebill.models import TimeEntry
from timebill.validation import TIME_ENTRY_POLICY, clamp_limit, validate_payload


def _validate(payload, partial=False):
    return validate_payload(model=TimeEntry, payload=payload, policy=TIME_ENTRY_POLICY, partial=partial)


class TestTimeEntryPayload:

    def test_values_are_coerced_by_column_type(self):
        cleaned = _validate({
            "task_id": "7",
            "start_at": "2025-03-03T10:00:00+01:00",
            "end_at": "2025-03-03T11:00:00Z",
            "note": "  kickoff  ",
            "billable": "false",
        })

        assert cleaned == {
            "task_id": 7,
            "start_at": datetime(2025, 3, 3, 9, 0),
            "end_at": datetime(2025, 3, 3, 11, 0),
            "note": "kickoff",
            "billable": False,
        }

    @pytest.mark.parametrize("payload", [
        {"task_id": "1.5"},
        {"task_id": True},
        {"start_at": "yesterday"},
        {"billable": "maybe"},
    ])
    def test_bad_values(self, payload):
        with pytest.raises(ValidationError):
            _validate(payload, partial=True)

    def test_required_fields_on_create(self):
        with pytest.raises(ValidationError):
            _validate({"task_id": 1, "start_at": "2025-03-03T09:00:00Z"})

    def test_partial_allows_subset(self):
        assert _validate({"note": "x"}, partial=True) == {"note": "x"}

    def test_non_writable_column_is_rejected(self):
        with pytest.raises(ValidationError):
            _validate({"duration_seconds": 60}, partial=True)

    def test_body_must_be_an_object(self):
        with pytest.raises(ValidationError):
            _validate(["task_id"], partial=True)


class TestClampLimit:

    @pytest.mark.parametrize("value,expected", [
        (None, 50),
        (10, 10),
        (500, 100),
        (0, 1),
        (-3, 1),
    ])
    def test_clamp(self, value, expected):
        assert clamp_limit(value, 50, 100) == expected
