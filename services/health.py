"""Health monitor: soft, ratio-based circuit state per source adapter.

Every real adapter call is evidence. Outcomes accumulate into a rolling
success ratio (counters halved when the window fills, so concurrent updates
commute) and a short latency sample. State transitions:

    Unknown  --success--------------------------> Online
    Online   --ratio < degraded_below------------> Degraded
    Degraded --recovery_successes in a row-------> Online
    any      --offline_after_failures in a row---> Offline
    Offline  --success or healthy probe----------> Degraded
    any      --failed probe----------------------> Offline
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from models.config import HealthSettings, settings
from models.models import HealthStatus, Outcome, SourceHealth
from utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class _SourceState:
    status: HealthStatus = HealthStatus.UNKNOWN
    successes: float = 0.0
    total: float = 0.0
    latencies: deque = field(default_factory=deque)
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    requests: int = 0
    last_checked: datetime | None = None

    @property
    def ratio(self) -> float:
        return self.successes / self.total if self.total else 1.0


class HealthMonitor:
    """Per-adapter health table.

    Args:
        config: Thresholds (defaults to settings.health)
        now: Wall-clock source for last_checked timestamps
    """

    def __init__(
        self,
        config: HealthSettings | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.config = config or settings.health
        self._now = now
        self._states: dict[str, _SourceState] = {}

    def register(self, name: str) -> None:
        """Create the entry for an adapter (status Unknown). Idempotent."""
        if name not in self._states:
            self._states[name] = _SourceState(
                latencies=deque(maxlen=self.config.latency_samples)
            )

    def _state(self, name: str) -> _SourceState:
        self.register(name)
        return self._states[name]

    def _transition(self, name: str, state: _SourceState, status: HealthStatus, reason: str) -> None:
        if state.status == status:
            return
        log = logger.warning if status == HealthStatus.OFFLINE else logger.info
        log("Source {} {} -> {} ({})", name, state.status.value, status.value, reason)
        state.status = status

    def record(self, name: str, outcome: Outcome, latency_ms: float) -> None:
        """Account one adapter call outcome."""
        state = self._state(name)
        cfg = self.config

        state.requests += 1
        state.total += 1
        if outcome == Outcome.SUCCESS:
            state.successes += 1
        if state.total >= cfg.window_size:
            state.successes /= 2
            state.total /= 2
        state.latencies.append(latency_ms)
        state.last_checked = self._now()

        if outcome == Outcome.SUCCESS:
            state.consecutive_failures = 0
            state.consecutive_successes += 1
            if state.status == HealthStatus.UNKNOWN:
                self._transition(name, state, HealthStatus.ONLINE, "first success")
            elif state.status == HealthStatus.OFFLINE:
                state.consecutive_successes = 1
                self._transition(name, state, HealthStatus.DEGRADED, "answered while offline")
            elif (
                state.status == HealthStatus.DEGRADED
                and state.consecutive_successes >= cfg.recovery_successes
            ):
                self._transition(name, state, HealthStatus.ONLINE, "run of successes")
            return

        state.consecutive_successes = 0
        if outcome == Outcome.FAILURE:
            state.consecutive_failures += 1
            if state.consecutive_failures >= cfg.offline_after_failures:
                self._transition(
                    name, state, HealthStatus.OFFLINE,
                    f"{state.consecutive_failures} consecutive failures",
                )
                return

        if (
            state.status in (HealthStatus.ONLINE, HealthStatus.UNKNOWN)
            and state.requests >= cfg.min_samples
            and state.ratio < cfg.degraded_below
        ):
            self._transition(name, state, HealthStatus.DEGRADED, f"success ratio {state.ratio:.2f}")

    def record_probe(self, name: str, healthy: bool, latency_ms: float | None = None) -> None:
        """Account an explicit health check; does not touch the success ratio."""
        state = self._state(name)
        state.last_checked = self._now()
        if not healthy:
            self._transition(name, state, HealthStatus.OFFLINE, "health check failed")
            return
        if latency_ms is not None:
            state.latencies.append(latency_ms)
        state.consecutive_failures = 0
        if state.status == HealthStatus.OFFLINE:
            state.consecutive_successes = 0
            self._transition(name, state, HealthStatus.DEGRADED, "health check passed")
        elif state.status == HealthStatus.UNKNOWN:
            self._transition(name, state, HealthStatus.ONLINE, "health check passed")

    def status(self, name: str) -> HealthStatus:
        return self._state(name).status

    def success_rate(self, name: str) -> float:
        return self._state(name).ratio

    def latency(self, name: str) -> float | None:
        """Mean of the recent latency samples in ms, None without samples."""
        samples = self._state(name).latencies
        return sum(samples) / len(samples) if samples else None

    def snapshot(self, name: str) -> SourceHealth:
        state = self._state(name)
        latency = self.latency(name)
        return SourceHealth(
            name=name,
            status=state.status,
            latency_ms=round(latency, 1) if latency is not None else None,
            success_rate=round(state.ratio, 3),
            last_checked=state.last_checked,
            consecutive_failures=state.consecutive_failures,
            total_requests=state.requests,
        )

    def table(self) -> dict[str, SourceHealth]:
        return {name: self.snapshot(name) for name in self._states}

    def reset(self, name: str) -> None:
        """Forget all evidence about an adapter (back to Unknown)."""
        self._states.pop(name, None)
        self.register(name)
