"""Health monitor and circuit breaker tests"""

import pytest

from stablewatch.schemas.aggregated import ConflictSummary
from stablewatch.services.health_monitor import CLOSED, HALF_OPEN, OPEN, CircuitBreaker, HealthMonitor


class TestCircuitBreaker:
    """Test circuit breaker state transitions"""

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker("cmc", failure_threshold=3, cooldown_seconds=60, success_threshold=2, clock=clock)

    def test_opens_after_threshold_failures(self, breaker):
        for _ in range(2):
            breaker.record_failure()
        assert breaker.state == CLOSED
        breaker.record_failure()
        assert breaker.state == OPEN
        assert breaker.allow_request() is False

    def test_full_cycle_open_half_open_closed(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()
        clock.advance(59)
        assert breaker.state == OPEN

        clock.advance(1)
        assert breaker.state == HALF_OPEN
        assert breaker.allow_request() is True
        breaker.record_success()
        assert breaker.state == HALF_OPEN
        breaker.record_success()
        assert breaker.state == CLOSED
        assert breaker.failure_count == 0

    def test_half_open_failure_reopens(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()
        clock.advance(60)
        assert breaker.state == HALF_OPEN
        breaker.record_failure()
        assert breaker.state == OPEN
        assert breaker.next_retry_time == clock() + 60

    def test_half_open_limits_trial_calls(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()
        clock.advance(60)
        assert [breaker.allow_request() for _ in range(3)] == [True, True, False]

    def test_success_decays_failures_when_closed(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        assert breaker.failure_count == 1

    def test_disabled_breaker_never_opens(self, clock):
        breaker = CircuitBreaker("cmc", failure_threshold=1, enabled=False, clock=clock)
        breaker.record_failure()
        assert breaker.allow_request() is True
        assert breaker.state == CLOSED


class TestHealthMonitor:
    """Test health scoring, alerts and degraded mode"""

    @pytest.fixture
    def monitor(self, settings, clock):
        monitor = HealthMonitor(settings, clock)
        monitor.initialize_source("cmc")
        monitor.initialize_source("messari")
        return monitor

    def test_empty_source_id_rejected(self, monitor):
        with pytest.raises(ValueError):
            monitor.initialize_source("")

    def test_unknown_source_raises_key_error(self, monitor):
        with pytest.raises(KeyError):
            monitor.get_source_health("nope")

    def test_success_keeps_source_healthy(self, monitor):
        monitor.record_success("cmc", duration=120, record_count=40)
        health = monitor.get_source_health("cmc")
        assert health["healthy"] is True
        assert health["health_score"] == 100
        assert health["data_quality"]["record_count"] == 40
        assert health["response_time"]["current"] == 120

    def test_slow_responses_cost_twenty_points(self, monitor, settings):
        monitor.record_success("cmc", duration=settings.HEALTH_RESPONSE_TIME_THRESHOLD_MS + 2000)
        assert monitor.get_source_health("cmc")["health_score"] == 80

    def test_error_rate_and_consecutive_failures_deducted(self, monitor):
        monitor.record_success("cmc")
        monitor.record_failure("cmc", error_type="timeout")
        health = monitor.get_source_health("cmc")
        assert health["circuit_breaker"]["state"] == CLOSED
        assert health["health_score"] == 65

    def test_half_open_halves_score(self, monitor, clock):
        for _ in range(3):
            monitor.record_failure("cmc", error_type="network")
        clock.advance(60)
        monitor.record_success("cmc")
        health = monitor.get_source_health("cmc")
        assert health["circuit_breaker"]["state"] == HALF_OPEN
        assert health["health_score"] == 31.25

    def test_failures_open_circuit_and_zero_score(self, monitor):
        for _ in range(3):
            monitor.record_failure("cmc", error_type="server", message="HTTP 502", status_code=502, retryable=True)
        health = monitor.get_source_health("cmc")
        assert health["circuit_breaker"]["state"] == OPEN
        assert health["health_score"] == 0
        assert health["operational"] is False
        assert health["error_metrics"]["error_types"] == {"server": 3}
        assert monitor.allow_request("cmc") is False

    def test_failure_alerts_raised_and_deduplicated(self, monitor):
        for _ in range(4):
            monitor.record_failure("cmc", error_type="timeout", message="timed out")
        alerts = monitor.get_health_alerts()
        types = sorted(a["type"] for a in alerts if a["source"] == "cmc")
        assert types == ["circuit_breaker", "consecutive_failures", "error_rate"]
        assert alerts[0]["level"] == "critical"
        assert monitor.get_health_alerts("critical")[0]["type"] == "circuit_breaker"

    def test_alerts_resolved_after_recovery(self, monitor, clock):
        monitor.record_failure("cmc", error_type="timeout")
        monitor.record_failure("cmc", error_type="timeout")
        monitor.record_failure("cmc", error_type="timeout")
        clock.advance(60)
        monitor.record_success("cmc")
        monitor.record_success("cmc")
        for _ in range(20):
            monitor.record_success("cmc")
        assert monitor.get_source_health("cmc")["circuit_breaker"]["state"] == CLOSED
        assert [a for a in monitor.get_health_alerts() if a["source"] == "cmc"] == []

    def test_degraded_mode_when_no_healthy_sources(self, monitor):
        for source in ("cmc", "messari"):
            for _ in range(3):
                monitor.record_failure(source, error_type="network")
        degraded = monitor.check_degraded_mode()
        assert degraded["recommended"] is True
        assert sorted(degraded["disabled_sources"]) == ["cmc", "messari"]
        assert monitor.get_system_health()["status"] == "down"

    def test_system_health_healthy(self, monitor):
        monitor.record_success("cmc", duration=100)
        monitor.record_success("messari", duration=200)
        system = monitor.get_system_health()
        assert system["status"] == "healthy"
        assert system["metrics"]["healthy_source_count"] == 2
        assert system["degraded_mode"]["recommended"] is False

    def test_conflict_penalty_capped(self, monitor):
        monitor.record_conflict_metrics(ConflictSummary(total_conflicts=10), asset_count=100)
        assert monitor.conflict_penalty == 5.0
        monitor.record_conflict_metrics(ConflictSummary(total_conflicts=100), asset_count=100)
        assert monitor.conflict_penalty == 20.0
        assert monitor.get_system_health()["overall_score"] == 80

    def test_conflict_alerts(self, monitor):
        summary = ConflictSummary(
            total_conflicts=6,
            conflicts_by_field={"pegged_asset": 6},
            conflicts_by_asset={"XYZ": 5, "ABC": 1},
        )
        monitor.record_conflict_metrics(summary, asset_count=10)
        types = {a["type"] for a in monitor.get_health_alerts() if a["source"] == "system"}
        assert types == {"conflict_threshold", "asset_conflict"}
        assert monitor.get_conflict_metrics()["asset_conflict_count"] == 2

    def test_alert_upgraded_in_place(self, monitor):
        monitor.record_conflict_metrics(ConflictSummary(total_conflicts=5, conflicts_by_asset={"XYZ": 5}), asset_count=100)
        first = [a for a in monitor.get_health_alerts() if a["type"] == "asset_conflict"]
        assert [a["level"] for a in first] == ["warning"]

        monitor.record_conflict_metrics(ConflictSummary(total_conflicts=10, conflicts_by_asset={"XYZ": 10}), asset_count=100)
        second = [a for a in monitor.get_health_alerts() if a["type"] == "asset_conflict"]
        assert len(second) == 1
        assert second[0]["id"] == first[0]["id"]
        assert second[0]["level"] == "error"

    def test_conflict_rate_uses_one_hour_window(self, monitor, clock):
        monitor.record_conflict_metrics(ConflictSummary(total_conflicts=10), asset_count=100)
        clock.advance(1800)
        monitor.record_conflict_metrics(ConflictSummary(total_conflicts=4), asset_count=100)
        assert monitor.get_conflict_metrics()["conflict_rate"] == 14

        clock.advance(1801)
        monitor.record_conflict_metrics(ConflictSummary(total_conflicts=0), asset_count=100)
        assert monitor.get_conflict_metrics()["conflict_rate"] == 4
        assert monitor.conflict_penalty == 2.0

    def test_cleanup_prunes_old_alerts(self, monitor, clock, settings):
        for _ in range(3):
            monitor.record_failure("cmc", error_type="timeout")
        clock.advance(settings.HEALTH_RETENTION_DAYS * 86400 + 1)
        assert monitor.cleanup_old_data() == 3
        assert monitor.get_health_alerts() == []
