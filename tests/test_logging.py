"""
Tests for the logging module.
"""

from candidate_sync.logging import (
    PipelineTimer,
    add_context_info,
    get_event_type,
    get_opportunity_id,
    get_trace_id,
    logging_context,
)


class TestLoggingContext:
    """Test logging context management."""

    def test_logging_context_sets_values(self):
        with logging_context(
            trace_id="trace_123",
            event_type="stage-changed",
            opportunity_id="OPP-1",
        ):
            assert get_trace_id() == "trace_123"
            assert get_event_type() == "stage-changed"
            assert get_opportunity_id() == "OPP-1"

    def test_logging_context_restores_values(self):
        """Nested contexts restore the outer values on exit."""
        with logging_context(trace_id="outer"):
            with logging_context(trace_id="inner", opportunity_id="OPP-1"):
                assert get_trace_id() == "inner"
            assert get_trace_id() == "outer"
            assert get_opportunity_id() is None

        assert get_trace_id() is None

    def test_processor_adds_context(self):
        with logging_context(trace_id="t-1", event_type="owner-changed"):
            event_dict = add_context_info(None, "info", {"event": "x"})

        assert event_dict["trace_id"] == "t-1"
        assert event_dict["event_type"] == "owner-changed"
        assert "opportunity_id" not in event_dict

    def test_processor_outside_context_adds_nothing(self):
        with logging_context(trace_id="t-1"):
            pass

        assert add_context_info(None, "info", {"event": "x"}) == {"event": "x"}
        assert get_event_type() is None

    def test_processor_keeps_explicit_keys(self):
        with logging_context(opportunity_id="OPP-ctx"):
            event_dict = add_context_info(None, "info", {"opportunity_id": "OPP-explicit"})

        assert event_dict["opportunity_id"] == "OPP-explicit"


class TestPipelineTimer:
    """Test pipeline timing functionality."""

    def test_timer_records_stages(self):
        timer = PipelineTimer()

        with timer.stage("resolve"):
            pass
        with timer.stage("apply"):
            pass

        assert set(timer.stages) == {"resolve", "apply"}
        assert all(v >= 0 for v in timer.stages.values())

    def test_timer_summary(self):
        timer = PipelineTimer()
        timer.record("resolve", 1.234)
        timer.record("apply", 50.0)

        summary = timer.summary()

        assert summary["total_ms"] >= 0
        assert summary["stages"] == {"resolve": 1.23, "apply": 50.0}
