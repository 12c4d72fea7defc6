"""
Unit tests for tracer setup and shutdown.
"""

import pytest

from parallelizer.observability import tracing


@pytest.fixture(autouse=True)
def fresh_tracer():
    """Start and end each test without a cached tracer."""
    tracing.shutdown_tracing()
    yield
    tracing.shutdown_tracing()


class TestTracing:
    """Tests for the tracer lifecycle across commands."""

    def test_tracer_is_cached(self):
        """Test repeated calls return the same tracer."""
        assert tracing.get_tracer() is tracing.get_tracer()

    def test_shutdown_drops_tracer(self):
        """Test shutdown clears the cached tracer and provider."""
        tracing.get_tracer()

        tracing.shutdown_tracing()

        assert tracing._tracer is None
        assert tracing._provider is None

    def test_next_command_records_spans(self):
        """Test spans are recorded again after a shutdown."""
        first = tracing.get_tracer()
        tracing.shutdown_tracing()

        second = tracing.get_tracer()

        assert second is not first
        with second.start_as_current_span("status") as span:
            assert span.is_recording()

    def test_shutdown_without_setup(self):
        """Test shutdown before any span is a no-op."""
        tracing.shutdown_tracing()

        assert tracing._tracer is None
