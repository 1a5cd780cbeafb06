"""
Tests for the logging module.
"""

import logging

import pytest

from price_consensus.logging import (
    NOISY_LOGGERS,
    PipelineTimer,
    add_context_info,
    configure_logging,
    get_analysis_id,
    get_stage,
    get_trace_id,
    logging_context,
    redact_secrets,
)


class TestLoggingContext:
    """Test logging context management."""

    def test_logging_context_sets_values(self):
        """Test that logging context sets values correctly."""
        with logging_context(trace_id="trace_123", analysis_id="an_abc"):
            assert get_trace_id() == "trace_123"
            assert get_analysis_id() == "an_abc"

    def test_logging_context_restores_values(self):
        """Test that context is restored after exiting."""
        with logging_context(analysis_id="outer"):
            assert get_analysis_id() == "outer"

            with logging_context(analysis_id="inner"):
                assert get_analysis_id() == "inner"

            assert get_analysis_id() == "outer"

        assert get_analysis_id() is None

    def test_logging_context_restored_after_exception(self):
        """A failing run must not leak its IDs into the next one."""
        with pytest.raises(RuntimeError):
            with logging_context(trace_id="t1", analysis_id="a1"):
                raise RuntimeError("boom")

        assert get_trace_id() is None
        assert get_analysis_id() is None

    def test_processor_injects_context(self):
        with logging_context(analysis_id="an_42"):
            event = add_context_info(None, 'info', {'event': 'x'})

        assert event['analysis_id'] == "an_42"
        assert 'trace_id' not in event

    def test_processor_outside_context(self):
        event = add_context_info(None, 'info', {'event': 'x'})

        assert 'analysis_id' not in event
        assert 'stage' not in event

    def test_explicit_field_wins(self):
        with logging_context(analysis_id="an_42"):
            event = add_context_info(None, 'info', {'event': 'x', 'analysis_id': 'other'})

        assert event['analysis_id'] == 'other'


class TestRedaction:
    """Credentials never reach log output."""

    def test_top_level_keys_masked(self):
        event = redact_secrets(None, 'info', {'event': 'x', 'api_key': 'sk-live', 'Authorization': 'Bearer t'})

        assert event['api_key'] == '***'
        assert event['Authorization'] == '***'
        assert event['event'] == 'x'

    def test_nested_context_masked_without_mutating_source(self):
        context = {'provider': 'groq', 'x-api-key': 'gsk'}

        event = redact_secrets(None, 'info', {'event': 'x', 'context': context})

        assert event['context'] == {'provider': 'groq', 'x-api-key': '***'}
        assert context['x-api-key'] == 'gsk'

    def test_empty_values_left_alone(self):
        event = redact_secrets(None, 'info', {'event': 'x', 'api_key': ''})

        assert event['api_key'] == ''


class TestConfigureLogging:
    def test_sdk_loggers_quietened(self):
        configure_logging(log_level='DEBUG')

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestPipelineTimer:
    """Test pipeline timing functionality."""

    def test_timer_records_stages(self):
        """Test that timer records stage durations."""
        timer = PipelineTimer()

        with timer.stage("identify"):
            pass

        with timer.stage("fetch"):
            pass

        assert timer.stages["identify"] >= 0
        assert timer.stages["fetch"] >= 0

    def test_stage_bound_while_running(self):
        timer = PipelineTimer()

        with timer.stage("reason"):
            assert get_stage() == "reason"
            event = add_context_info(None, 'info', {'event': 'x'})

        assert event['stage'] == "reason"
        assert get_stage() is None

    def test_timer_records_failed_stage(self):
        timer = PipelineTimer()

        with pytest.raises(ValueError):
            with timer.stage("reason"):
                raise ValueError("x")

        assert "reason" in timer.stages
        assert get_stage() is None

    def test_timing_ms(self):
        timer = PipelineTimer()
        timer.record("identify", 100.7)

        timing = timer.timing_ms()

        assert timing["identify"] == 100
        assert timing["total"] >= 0

    def test_timer_summary(self):
        """Test summary dictionary format."""
        timer = PipelineTimer()
        timer.record("identify", 100.0)
        timer.record("reason", 50.0)

        summary = timer.summary()

        assert summary["stages"] == {"identify": 100.0, "reason": 50.0}
        assert summary["total_ms"] >= 0
