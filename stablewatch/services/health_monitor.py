"""Per-source health tracking, circuit breaking and alerting.

The monitor is the only writer of source health state. Every fetch outcome
goes through :meth:`HealthMonitor.record_success` or
:meth:`HealthMonitor.record_failure`, which update the rolling metrics, drive
the source's :class:`CircuitBreaker`, recompute the health score and raise or
resolve alerts. Aggregation-level conflict statistics are fed in once per
refresh cycle through :meth:`HealthMonitor.record_conflict_metrics`.

All time-dependent behaviour reads an injectable ``clock`` (epoch seconds),
so cooldowns and sliding windows can be tested without sleeping.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from stablewatch.core.config import Settings, settings as default_settings
from stablewatch.core.logging import get_logger
from stablewatch.schemas.aggregated import ConflictSummary

log = get_logger("services.health_monitor")

Clock = Callable[[], float]

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half-open"

HOUR = 3600.0
DAY = 24 * HOUR
OPERATIONAL_SCORE = 20.0
RESOLVE_SCORE = 80.0
CONSECUTIVE_FAILURE_ALERT = 3
SYSTEM_SOURCE = "system"

LEVEL_PRIORITY = {"info": 0, "warning": 1, "error": 2, "critical": 3}

RECOMMENDED_ACTIONS: Dict[str, List[str]] = {
    "error_rate": [
        "Check API service status",
        "Verify network connectivity",
        "Review recent error messages",
    ],
    "consecutive_failures": [
        "Check API credentials",
        "Verify API endpoints",
        "Check rate limiting status",
    ],
    "circuit_breaker": [
        "Wait for circuit breaker timeout",
        "Check API service status",
        "Review error logs for root cause",
    ],
    "conflict_rate": [
        "Review data source configurations",
        "Check for API schema changes",
        "Validate source priority settings",
    ],
    "conflict_threshold": [
        "Investigate specific conflicting assets",
        "Review field-level conflict patterns",
        "Consider adjusting conflict resolution rules",
    ],
    "asset_conflict": [
        "Compare the asset's records across sources",
        "Check whether the asset was re-tagged upstream",
    ],
}


def median(values: List[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    return ordered[mid] if len(ordered) % 2 else (ordered[mid - 1] + ordered[mid]) / 2


def percentile(values: List[float], pct: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    return ordered[math.ceil(pct / 100 * (len(ordered) - 1))]


@dataclass
class CircuitBreaker:
    """
    Three-state circuit breaker for one source.

    States:
    - closed: calls pass; failures accumulate and each success decays the count by one.
    - open: calls are short-circuited until ``cooldown_seconds`` have elapsed.
    - half-open: up to ``success_threshold`` trial calls are allowed.

    Transitions:
    - closed -> open: failure count reaches ``failure_threshold``.
    - open -> half-open: cooldown elapsed (evaluated whenever ``state`` is read).
    - half-open -> closed: ``success_threshold`` consecutive successes.
    - half-open -> open: any failure, with a fresh cooldown.
    """

    source_id: str
    failure_threshold: int = 6
    cooldown_seconds: float = 60.0
    success_threshold: int = 3
    enabled: bool = True
    clock: Clock = time.time
    _state: str = field(default=CLOSED, init=False, repr=False)
    _failure_count: int = field(default=0, init=False, repr=False)
    _success_count: int = field(default=0, init=False, repr=False)
    _trial_calls: int = field(default=0, init=False, repr=False)
    _next_retry_time: Optional[float] = field(default=None, init=False, repr=False)

    @property
    def state(self) -> str:
        if self._state == OPEN and self._next_retry_time is not None and self.clock() >= self._next_retry_time:
            self._state = HALF_OPEN
            self._next_retry_time = None
            self._success_count = 0
            self._trial_calls = 0
            log.info(f"Circuit breaker HALF-OPEN for {self.source_id}; allowing trial calls")
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def next_retry_time(self) -> Optional[float]:
        return self._next_retry_time

    def allow_request(self) -> bool:
        if not self.enabled:
            return True
        state = self.state
        if state == CLOSED:
            return True
        if state == OPEN:
            return False
        if self._trial_calls >= self.success_threshold:
            return False
        self._trial_calls += 1
        return True

    def record_success(self) -> None:
        if not self.enabled:
            return
        state = self.state
        if state == HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._close()
        elif state == CLOSED:
            self._failure_count = max(0, self._failure_count - 1)

    def record_failure(self) -> None:
        if not self.enabled:
            return
        state = self.state
        self._failure_count += 1
        self._success_count = 0
        if state == HALF_OPEN or (state == CLOSED and self._failure_count >= self.failure_threshold):
            self._trip()

    def reset(self) -> None:
        self._close()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "next_retry_time": self._next_retry_time,
        }

    def _trip(self) -> None:
        self._state = OPEN
        self._next_retry_time = self.clock() + self.cooldown_seconds
        self._trial_calls = 0
        log.warning(
            f"Circuit breaker OPEN for {self.source_id} after {self._failure_count} failures; "
            f"retry in {self.cooldown_seconds:.0f}s"
        )

    def _close(self) -> None:
        if self._state != CLOSED:
            log.info(f"Circuit breaker CLOSED for {self.source_id}")
        self._state = CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._trial_calls = 0
        self._next_retry_time = None


@dataclass
class HealthAlert:
    id: str
    level: str
    type: str
    source: str
    title: str
    description: str
    timestamp: float
    active: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)
    actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level,
            "type": self.type,
            "source": self.source,
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp,
            "active": self.active,
            "metadata": dict(self.metadata),
            "actions": list(self.actions),
        }


@dataclass
class SourceHealthState:
    source_id: str
    operational: bool = True
    health_score: float = 100.0
    last_successful_operation: Optional[float] = None
    consecutive_failures: int = 0
    total_requests: int = 0
    successful_requests: int = 0
    last_error: Optional[str] = None
    current_response_ms: float = 0.0
    average_response_ms: float = 0.0
    response_samples: List[Tuple[float, float]] = field(default_factory=list)
    error_rate: float = 0.0
    error_count: int = 0
    error_types: Dict[str, int] = field(default_factory=dict)
    recent_errors: List[Dict[str, Any]] = field(default_factory=list)
    record_count: int = 0
    freshness_score: float = 1.0


class HealthMonitor:
    """Tracks health for every registered source and for the system as a whole."""

    def __init__(self, settings: Optional[Settings] = None, clock: Optional[Clock] = None):
        self.settings = settings or default_settings
        self.clock: Clock = clock or time.time
        self._sources: Dict[str, SourceHealthState] = {}
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._alerts: Dict[str, HealthAlert] = {}
        self._alert_seq = 0
        self._started_at = self.clock()
        self._total_requests = 0
        self._total_errors = 0
        self._response_time_sum = 0.0
        self._conflict_penalty = 0.0
        self._conflicts: Dict[str, Any] = {
            "total_conflicts": 0,
            "conflicts_by_field": {},
            "conflicts_by_asset": {},
            "last_conflict_time": None,
            "conflict_rate": 0.0,
            "trends": [],
            "peak_periods": [],
        }

    # -------------------------------------------------------------------------
    # Source lifecycle
    # -------------------------------------------------------------------------
    def initialize_source(self, source_id: str) -> None:
        if not source_id or not isinstance(source_id, str):
            raise ValueError("source_id must be a non-empty string")
        if source_id in self._sources:
            return
        self._sources[source_id] = SourceHealthState(source_id)
        self._breakers[source_id] = CircuitBreaker(
            source_id,
            failure_threshold=self.settings.CIRCUIT_BREAKER_FAILURES,
            cooldown_seconds=self.settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
            success_threshold=self.settings.CIRCUIT_BREAKER_HALF_OPEN_SUCCESSES,
            enabled=self.settings.CIRCUIT_BREAKER_ENABLED,
            clock=self.clock,
        )

    @property
    def source_ids(self) -> List[str]:
        return list(self._sources)

    def breaker(self, source_id: str) -> CircuitBreaker:
        self.initialize_source(source_id)
        return self._breakers[source_id]

    def allow_request(self, source_id: str) -> bool:
        """False while the source's circuit is open."""
        return self.breaker(source_id).allow_request()

    # -------------------------------------------------------------------------
    # Outcome recording
    # -------------------------------------------------------------------------
    def record_success(
        self,
        source_id: str,
        duration: float = 0.0,
        record_count: Optional[int] = None,
        timestamp: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> None:
        """Record a successful operation; ``duration`` is in milliseconds."""
        self.initialize_source(source_id)
        data = self._sources[source_id]
        now = timestamp if timestamp is not None else self.clock()

        data.last_successful_operation = now
        data.consecutive_failures = 0
        data.total_requests += 1
        data.successful_requests += 1
        data.error_rate = (data.total_requests - data.successful_requests) / data.total_requests

        if duration:
            data.current_response_ms = duration
            data.response_samples.append((now, duration))
            data.response_samples = [s for s in data.response_samples if s[0] > now - HOUR]
            if data.response_samples:
                data.average_response_ms = sum(d for _, d in data.response_samples) / len(data.response_samples)

        if record_count is not None:
            data.record_count = record_count
            data.freshness_score = 1.0

        self._total_requests += 1
        self._response_time_sum += duration or 0.0

        self._breakers[source_id].record_success()
        self._update_health_score(source_id)
        self._resolve_alerts(source_id)
        log.debug(f"{source_id}: success op={operation} duration={duration:.0f}ms records={record_count}")

    def record_failure(
        self,
        source_id: str,
        error_type: str = "unknown",
        message: str = "",
        status_code: Optional[int] = None,
        retryable: bool = False,
        timestamp: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> None:
        self.initialize_source(source_id)
        data = self._sources[source_id]
        now = timestamp if timestamp is not None else self.clock()

        data.consecutive_failures += 1
        data.total_requests += 1
        data.last_error = message
        data.error_count += 1
        data.error_types[error_type] = data.error_types.get(error_type, 0) + 1
        data.recent_errors.append(
            {
                "timestamp": now,
                "type": error_type,
                "message": message,
                "status_code": status_code,
                "retryable": retryable,
                "operation": operation,
            }
        )
        data.recent_errors = [e for e in data.recent_errors if e["timestamp"] > now - DAY]
        data.error_rate = (data.total_requests - data.successful_requests) / data.total_requests

        self._total_requests += 1
        self._total_errors += 1

        self._breakers[source_id].record_failure()
        self._update_health_score(source_id)
        self._check_for_alerts(source_id)

    def _update_health_score(self, source_id: str) -> None:
        data = self._sources[source_id]
        state = self._breakers[source_id].state

        score = 100.0
        score -= data.error_rate * 50
        score -= min(data.consecutive_failures * 10, 40)
        if data.average_response_ms > self.settings.HEALTH_RESPONSE_TIME_THRESHOLD_MS:
            score -= 20
        if state == OPEN:
            score = 0.0
        elif state == HALF_OPEN:
            score *= 0.5

        data.health_score = max(0.0, min(100.0, score))
        data.operational = data.health_score > OPERATIONAL_SCORE

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------
    def get_source_health(self, source_id: str) -> Dict[str, Any]:
        data = self._sources.get(source_id)
        if data is None:
            raise KeyError(f"Unknown data source: {source_id}")
        breaker = self._breakers[source_id]
        durations = [d for _, d in data.response_samples]
        circuit = breaker.snapshot()
        return {
            "source_id": source_id,
            "status": self._source_status(data, circuit["state"]),
            "operational": data.operational and circuit["state"] != OPEN,
            "healthy": data.operational and circuit["state"] != OPEN,
            "health_score": round(data.health_score, 2),
            "consecutive_failures": data.consecutive_failures,
            "total_requests": data.total_requests,
            "successful_requests": data.successful_requests,
            "last_error": data.last_error,
            "last_successful_operation": data.last_successful_operation,
            "response_time": {
                "current": data.current_response_ms,
                "average": round(data.average_response_ms),
                "median": median(durations),
                "p95": percentile(durations, 95),
                "p99": percentile(durations, 99),
                "min": min(durations) if durations else 0.0,
                "max": max(durations) if durations else 0.0,
            },
            "error_metrics": {
                "error_rate": data.error_rate,
                "error_count": data.error_count,
                "error_types": dict(data.error_types),
                "recent_errors": [dict(e) for e in data.recent_errors],
            },
            "data_quality": {"record_count": data.record_count, "freshness_score": data.freshness_score},
            "circuit_breaker": circuit,
            "alerts": [a.to_dict() for a in self._alerts.values() if a.active and a.source == source_id],
        }

    @staticmethod
    def _source_status(data: SourceHealthState, state: str) -> str:
        if state == OPEN:
            return "down"
        if not data.operational:
            return "critical"
        if data.health_score < 60:
            return "degraded"
        return "healthy"

    def system_error_rate(self) -> float:
        return self._total_errors / self._total_requests if self._total_requests else 0.0

    def system_average_response_time(self) -> float:
        return self._response_time_sum / self._total_requests if self._total_requests else 0.0

    def check_degraded_mode(self) -> Dict[str, Any]:
        healthy = sum(1 for d in self._sources.values() if d.operational)
        minimum = self.settings.HEALTH_MIN_HEALTHY_SOURCES
        error_rate = self.system_error_rate()
        avg_response = self.system_average_response_time()
        reasons: List[str] = []

        if healthy < minimum:
            reasons.append(f"Only {healthy} healthy sources (minimum: {minimum})")
        if error_rate > self.settings.HEALTH_ERROR_RATE_THRESHOLD:
            reasons.append(f"High system error rate: {error_rate * 100:.1f}%")
        if avg_response > self.settings.HEALTH_RESPONSE_TIME_THRESHOLD_MS:
            reasons.append(f"High average response time: {avg_response:.0f}ms")

        return {
            "recommended": bool(reasons),
            "reasons": reasons,
            "disabled_sources": [sid for sid, d in self._sources.items() if not d.operational],
            "config": {
                "error_threshold": self.settings.HEALTH_ERROR_RATE_THRESHOLD,
                "response_time_threshold": self.settings.HEALTH_RESPONSE_TIME_THRESHOLD_MS,
                "minimum_sources": minimum,
            },
        }

    def get_system_health(self) -> Dict[str, Any]:
        sources = [self.get_source_health(sid) for sid in self._sources]
        healthy = sum(1 for s in sources if s["operational"])
        overall = sum(s["health_score"] for s in sources) / len(sources) if sources else 0.0
        overall = max(0.0, overall - self._conflict_penalty)
        uptime = int(self.clock() - self._started_at)

        return {
            "status": self._system_status(overall, healthy, len(sources)),
            "operational": healthy >= self.settings.HEALTH_MIN_HEALTHY_SOURCES,
            "overall_score": round(overall),
            "sources": sources,
            "metrics": {
                "total_requests": self._total_requests,
                "success_rate": 1 - self.system_error_rate() if self._total_requests else 1.0,
                "average_response_time": self.system_average_response_time(),
                "data_freshness": (
                    sum(d.freshness_score for d in self._sources.values()) / len(self._sources)
                    if self._sources
                    else 0.0
                ),
                "source_count": len(sources),
                "healthy_source_count": healthy,
            },
            "conflicts": self.get_conflict_metrics(),
            "active_alerts": self.get_health_alerts(),
            "degraded_mode": self.check_degraded_mode(),
            "timestamp": self.clock(),
            "uptime": f"{uptime // 3600}h {(uptime % 3600) // 60}m",
        }

    @staticmethod
    def _system_status(score: float, healthy: int, total: int) -> str:
        if healthy == 0:
            return "down"
        if score < 30:
            return "critical"
        if score < 60 or healthy < total * 0.5:
            return "degraded"
        return "healthy"

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------
    def get_health_alerts(self, level: str = "info") -> List[Dict[str, Any]]:
        floor = LEVEL_PRIORITY.get(level, 0)
        alerts = [a for a in self._alerts.values() if a.active and LEVEL_PRIORITY[a.level] >= floor]
        alerts.sort(key=lambda a: -LEVEL_PRIORITY[a.level])
        return [a.to_dict() for a in alerts]

    def _check_for_alerts(self, source_id: str) -> None:
        data = self._sources[source_id]
        if data.error_rate > self.settings.HEALTH_ERROR_RATE_THRESHOLD:
            self._raise_alert(
                "error_rate",
                "warning",
                source_id,
                "High Error Rate",
                f"Error rate for {source_id} is {data.error_rate * 100:.1f}%",
                {"error_rate": data.error_rate},
            )
        if data.consecutive_failures >= CONSECUTIVE_FAILURE_ALERT:
            self._raise_alert(
                "consecutive_failures",
                "error",
                source_id,
                "Consecutive Failures",
                f"{data.consecutive_failures} consecutive failures for {source_id}",
                {"consecutive_failures": data.consecutive_failures},
            )
        if self._breakers[source_id].state == OPEN:
            self._raise_alert(
                "circuit_breaker",
                "critical",
                source_id,
                "Circuit Breaker Open",
                f"Circuit breaker opened for {source_id} due to repeated failures",
                {"circuit_breaker_state": OPEN},
            )

    def _raise_alert(
        self,
        alert_type: str,
        level: str,
        source: str,
        title: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> HealthAlert:
        """Create an alert, or upgrade the active one for the same (source, type)."""
        for alert in self._alerts.values():
            if alert.active and alert.source == source and alert.type == alert_type:
                if LEVEL_PRIORITY[level] > LEVEL_PRIORITY[alert.level]:
                    alert.level = level
                    alert.title = title
                    alert.description = description
                    alert.metadata.update(metadata or {})
                    alert.timestamp = self.clock()
                    log.warning(f"Alert upgraded to {level}: [{source}] {description}")
                return alert

        self._alert_seq += 1
        alert = HealthAlert(
            id=f"{source}_{alert_type}_{self._alert_seq}",
            level=level,
            type=alert_type,
            source=source,
            title=title,
            description=description,
            timestamp=self.clock(),
            metadata=dict(metadata or {}),
            actions=list(RECOMMENDED_ACTIONS.get(alert_type, ["Review service logs"])),
        )
        self._alerts[alert.id] = alert
        log.warning(f"Alert raised ({level}): [{source}] {description}")
        return alert

    def _resolve_alerts(self, source_id: str) -> None:
        data = self._sources[source_id]
        if data.health_score <= RESOLVE_SCORE or data.consecutive_failures:
            return
        for alert in self._alerts.values():
            if alert.active and alert.source == source_id:
                alert.active = False
                log.info(f"Alert resolved: [{source_id}] {alert.type}")

    # -------------------------------------------------------------------------
    # Conflicts
    # -------------------------------------------------------------------------
    def record_conflict_metrics(self, summary: ConflictSummary, asset_count: int = 0) -> None:
        """Ingest one cycle's conflict tallies and refresh rate, alerts and penalty."""
        now = self.clock()
        metrics = self._conflicts
        metrics["total_conflicts"] = summary.total_conflicts
        metrics["conflicts_by_field"] = dict(summary.conflicts_by_field)
        metrics["conflicts_by_asset"] = dict(summary.conflicts_by_asset)
        metrics["last_conflict_time"] = summary.last_conflict_time

        metrics["trends"].append(
            {
                "timestamp": now,
                "total_conflicts": summary.total_conflicts,
                "asset_count": asset_count,
                "conflict_ratio": summary.total_conflicts / asset_count if asset_count else 0.0,
            }
        )
        metrics["trends"] = [t for t in metrics["trends"] if t["timestamp"] > now - DAY]
        metrics["conflict_rate"] = float(
            sum(t["total_conflicts"] for t in metrics["trends"] if t["timestamp"] > now - HOUR)
        )

        if summary.total_conflicts == 0:
            for alert in self._alerts.values():
                if alert.active and alert.source == SYSTEM_SOURCE and alert.type != "conflict_rate":
                    alert.active = False
        self._check_conflict_alerts(asset_count)
        self._conflict_penalty = min(
            metrics["conflict_rate"] * self.settings.CONFLICT_PENALTY_PER_CONFLICT,
            self.settings.CONFLICT_PENALTY_CAP,
        )

    @property
    def conflict_penalty(self) -> float:
        return self._conflict_penalty

    def get_conflict_metrics(self) -> Dict[str, Any]:
        metrics = self._conflicts
        rate = metrics["conflict_rate"]
        max_per_hour = self.settings.MAX_CONFLICTS_PER_HOUR
        if rate > max_per_hour:
            status = "critical"
        elif rate > max_per_hour * 0.5:
            status = "elevated"
        else:
            status = "healthy"

        return {
            "total_conflicts": metrics["total_conflicts"],
            "conflict_rate": round(rate, 2),
            "conflicts_by_field": dict(metrics["conflicts_by_field"]),
            "conflicts_by_asset": dict(metrics["conflicts_by_asset"]),
            "asset_conflict_count": len(metrics["conflicts_by_asset"]),
            "field_conflict_count": len(metrics["conflicts_by_field"]),
            "trends": [dict(t) for t in metrics["trends"][-24:]],
            "thresholds": {
                "max_conflicts_per_hour": max_per_hour,
                "max_conflicts_per_asset": self.settings.MAX_CONFLICTS_PER_ASSET,
                "alert_threshold": self.settings.CONFLICT_ALERT_THRESHOLD,
            },
            "penalty": self._conflict_penalty,
            "status": status,
            "last_conflict_time": metrics["last_conflict_time"],
            "peak_periods": list(metrics["peak_periods"][-5:]),
        }

    def _check_conflict_alerts(self, asset_count: int) -> None:
        metrics = self._conflicts
        rate = metrics["conflict_rate"]
        max_per_hour = self.settings.MAX_CONFLICTS_PER_HOUR
        threshold = self.settings.CONFLICT_ALERT_THRESHOLD
        per_asset = self.settings.MAX_CONFLICTS_PER_ASSET

        if rate > max_per_hour:
            self._raise_alert(
                "conflict_rate",
                "warning",
                SYSTEM_SOURCE,
                "High Conflict Rate",
                f"Conflict rate is {rate:.1f} per hour (threshold: {max_per_hour})",
                {"conflict_rate": rate, "threshold": max_per_hour},
            )

        if asset_count > 0:
            conflicted = len(metrics["conflicts_by_asset"])
            share = conflicted / asset_count
            if share > threshold:
                self._raise_alert(
                    "conflict_threshold",
                    "error" if share > threshold * 2 else "warning",
                    SYSTEM_SOURCE,
                    "High Asset Conflict Percentage",
                    f"{share * 100:.1f}% of assets have conflicts (threshold: {threshold * 100:.1f}%)",
                    {"conflict_percentage": share, "asset_conflict_count": conflicted, "total_assets": asset_count},
                )

        for asset_key, count in metrics["conflicts_by_asset"].items():
            if count >= per_asset:
                self._raise_alert(
                    "asset_conflict",
                    "error" if count >= per_asset * 2 else "warning",
                    SYSTEM_SOURCE,
                    f"High Conflicts for {asset_key}",
                    f"Asset {asset_key} has {count} conflicts (threshold: {per_asset})",
                    {"asset_key": asset_key, "conflict_count": count},
                )

        if rate > max_per_hour * 1.5:
            metrics["peak_periods"].append({"timestamp": self.clock(), "conflict_rate": rate})
            metrics["peak_periods"] = metrics["peak_periods"][-10:]

    # -------------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------------
    def cleanup_old_data(self) -> int:
        """Drop alerts and samples older than the retention window. Returns alerts removed."""
        cutoff = self.clock() - self.settings.HEALTH_RETENTION_DAYS * DAY
        stale = [aid for aid, alert in self._alerts.items() if alert.timestamp < cutoff]
        for aid in stale:
            del self._alerts[aid]
        for data in self._sources.values():
            data.response_samples = [s for s in data.response_samples if s[0] > cutoff]
            data.recent_errors = [e for e in data.recent_errors if e["timestamp"] > cutoff]
        if stale:
            log.info(f"Pruned {len(stale)} stale health alerts")
        return len(stale)
