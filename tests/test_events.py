"""Unit tests for build events (ts_scaffolder.events)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ts_scaffolder.events import (
    BuildErrorDetail,
    BundleEndEvent,
    EndEvent,
    ErrorEvent,
    FatalEvent,
    StartEvent,
    parse_event,
)

pytestmark = pytest.mark.unit


class TestBuildErrorDetail:
    def test_str_with_everything(self):
        detail = BuildErrorDetail(message="boom", stage="typescript", module="src/index.ts")
        assert str(detail) == "[typescript] boom (src/index.ts)"

    def test_str_message_only(self):
        assert str(BuildErrorDetail(message="boom")) == "boom"


class TestParseEvent:
    @pytest.mark.parametrize(
        "payload, cls",
        [
            ({"kind": "start"}, StartEvent),
            ({"kind": "bundle-end", "duration_ms": 12.5}, BundleEndEvent),
            ({"kind": "error", "detail": {"message": "x"}}, ErrorEvent),
            ({"kind": "fatal", "detail": {"message": "x"}}, FatalEvent),
            ({"kind": "end"}, EndEvent),
        ],
    )
    def test_dispatch_on_kind(self, payload, cls):
        assert isinstance(parse_event(payload), cls)

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            parse_event({"kind": "restart"})

    def test_error_requires_detail(self):
        with pytest.raises(ValidationError):
            parse_event({"kind": "error"})

    def test_events_are_values(self):
        assert StartEvent() == StartEvent()
        assert BundleEndEvent(duration_ms=1) != BundleEndEvent(duration_ms=2)
