"""End-to-end tests for the Driver run lifecycle."""

import io
import json

import pytest

from synthload.driver import DEFAULT_NAMESPACE, Driver
from synthload.engine import LocalEngine
from synthload.exceptions import ConfigurationError, SynthloadError
from synthload.metrics import JsonPublisher
from synthload.models import RunState

SOURCE_100 = '{"numRecords": 100, "keySizeBytes": 8, "valueSizeBytes": 8}'


class RecordingPublisher:
    name = "recording"

    def __init__(self):
        self.calls = []

    def publish(self, metrics, namespace, *, step_metrics=None, latency_ms=None):
        self.calls.append((metrics, namespace, step_metrics, latency_ms))


class BrokenPublisher:
    name = "broken"

    def publish(self, metrics, namespace, *, step_metrics=None, latency_ms=None):
        raise RuntimeError("disk full")


def make_driver(source=SOURCE_100, step="{}", **kwargs):
    kwargs.setdefault("publisher", RecordingPublisher())
    return Driver.from_json(source, step, **kwargs)


class TestScenarios:
    def test_single_step_identity(self):
        driver = make_driver(step='{"outputRecordsPerInputRecord": 1}')
        report = driver.run()
        assert report.success
        assert report.state is RunState.PUBLISHED
        assert report.metrics.total_records == 100
        assert report.metrics.total_errors == 0
        assert report.metrics.total_bytes == 100 * 16
        assert report.metrics.wall_clock_seconds > 0
        assert driver.state is RunState.PUBLISHED

    def test_fan_out_doubles_terminal_records(self):
        report = make_driver(step='{"outputRecordsPerInputRecord": 2}').run()
        assert report.metrics.total_records == 200

    def test_certain_failure_collects_every_record(self):
        report = make_driver(
            source='{"numRecords": 10, "keySizeBytes": 8, "valueSizeBytes": 8}',
            step='{"failureProbability": 1.0}',
        ).run()
        assert report.success
        assert report.metrics.total_records == 0
        assert report.metrics.total_errors == 10
        assert report.engine_errors == 10

    def test_chained_steps_multiply_fan_out(self):
        report = make_driver(
            source='{"numRecords": 10, "keySizeBytes": 8, "valueSizeBytes": 8}',
            step='{"outputRecordsPerInputRecord": 2}',
            count=3,
        ).run()
        assert report.metrics.total_records == 80
        assert list(report.step_metrics) == ["Step: 0", "Step: 1", "Step: 2"]
        assert [m.total_records for m in report.step_metrics.values()] == [10, 20, 40]

    def test_multiple_workers(self):
        report = make_driver(
            source='{"numRecords": 500, "keySizeBytes": 8, "valueSizeBytes": 8, '
            '"bundleSizeRecords": 50}',
            engine=LocalEngine(workers=4),
        ).run()
        assert report.metrics.total_records == 500
        assert report.counters["records_read"] == 500
        assert report.counters["bundles"] == 12

    def test_identical_records_fail_independently(self):
        source = '{"numRecords": 1000, "keySizeBytes": 0, "valueSizeBytes": 0}'
        step = '{"failureProbability": 0.5}'
        report = make_driver(source=source, step=step).run()
        assert 300 < report.metrics.total_errors < 700
        assert report.metrics.total_records + report.metrics.total_errors == 1000
        again = make_driver(source=source, step=step).run()
        assert again.metrics.total_errors == report.metrics.total_errors

    def test_low_entropy_records_fail_independently(self):
        report = make_driver(
            source='{"numRecords": 1000, "keySizeBytes": 1, "valueSizeBytes": 4, '
            '"valueRandomFraction": 0}',
            step='{"failureProbability": 0.1}',
        ).run()
        assert 40 < report.metrics.total_errors < 160

    def test_regeneration_gives_identical_totals(self):
        step = '{"outputRecordsPerInputRecord": 2, "failureProbability": 0.3}'
        first = make_driver(step=step).run().metrics
        second = make_driver(step=step).run().metrics
        assert first.total_records == second.total_records
        assert first.total_errors == second.total_errors
        assert first.total_bytes == second.total_bytes


class TestLifecycle:
    def test_initial_state(self):
        driver = make_driver()
        assert driver.state is RunState.CONFIGURED
        assert driver.namespace == DEFAULT_NAMESPACE

    def test_publishes_exactly_once(self):
        publisher = RecordingPublisher()
        driver = make_driver(namespace="load", publisher=publisher)
        report = driver.run()
        assert report.published
        assert len(publisher.calls) == 1
        metrics, namespace, step_metrics, latency_ms = publisher.calls[0]
        assert metrics == report.metrics
        assert namespace == "load"
        assert "Step: 0" in step_metrics
        assert set(latency_ms) == {"p50", "p95", "p99"}

    def test_cannot_run_twice(self):
        driver = make_driver()
        driver.run()
        with pytest.raises(SynthloadError) as info:
            driver.run()
        assert info.value.code == "invalid_state"

    def test_metrics_frozen_after_run(self):
        driver = make_driver()
        driver.run()
        assert driver.aggregator.frozen
        assert all(step.metrics.frozen for step in driver.chain.steps)

    def test_engine_failure_fails_run(self):
        publisher = RecordingPublisher()
        driver = make_driver(
            step='{"failureProbability": 1.0}',
            engine=LocalEngine(error_policy="fail"),
            publisher=publisher,
        )
        report = driver.run()
        assert not report.success
        assert report.state is RunState.FAILED
        assert report.metrics is None
        assert report.engine_errors >= 1
        assert publisher.calls == []
        assert driver.state is RunState.FAILED

    def test_publication_failure_keeps_run_successful(self, caplog):
        driver = make_driver(publisher=BrokenPublisher())
        report = driver.run()
        assert report.success
        assert not report.published
        assert report.state is RunState.COMPLETED
        assert "disk full" in caplog.text

    def test_engine_exception_marks_failed(self):
        class ExplodingEngine:
            def run(self, source, chain, monitor):
                raise RuntimeError("engine down")

        driver = make_driver(engine=ExplodingEngine())
        with pytest.raises(RuntimeError):
            driver.run()
        assert driver.state is RunState.FAILED


class TestConfiguration:
    def test_malformed_json(self):
        with pytest.raises(ConfigurationError) as info:
            Driver.from_json("{not json", "{}")
        assert info.value.code == "invalid_json"

    def test_invalid_probability(self):
        with pytest.raises(ConfigurationError) as info:
            Driver.from_json(SOURCE_100, '{"failureProbability": 1.5}')
        assert info.value.code == "invalid_options"

    def test_json_publisher_output(self):
        stream = io.StringIO()
        report = make_driver(publisher=JsonPublisher(stream)).run()
        data = json.loads(stream.getvalue())
        assert data["namespace"] == DEFAULT_NAMESPACE
        assert data["total_records"] == report.metrics.total_records
