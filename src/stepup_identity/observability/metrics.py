"""Prometheus metrics for sign-in and step-up verification.

Collectors are created on first use. Without ``prometheus_client`` every
call is a no-op, and a misbehaving collector is logged and ignored so that
metrics can never fail a sign-in.

Example:
    ```python
    from stepup_identity.observability import AuthMetrics

    with AuthMetrics.operation("verify", method="otp"):
        await otp_manager.verify(user_id, code)
    ```
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from ..audit.events import AuthAuditEvent

_PREFIX = "stepup_auth"


class _AuthMetricsRegistry:
    """Holds the process-wide collectors, built lazily."""

    def __init__(self) -> None:
        self._built = False
        self._histogram: Any = None
        self._counter: Any = None
        self._lockout_counter: Any = None

    def _build(self) -> None:
        if self._built:
            return
        self._built = True
        try:
            from prometheus_client import Counter, Histogram
        except ImportError:
            logger.debug("prometheus_client is not installed; metrics are off")
            return

        self._histogram = Histogram(
            f"{_PREFIX}_operation_duration_seconds",
            "Time spent in sign-in and verification operations",
            ["method", "operation"],
        )
        self._counter = Counter(
            f"{_PREFIX}_operations_total",
            "Sign-in and verification operations by outcome",
            ["method", "operation", "result"],
        )
        self._lockout_counter = Counter(
            f"{_PREFIX}_verification_lockouts_total",
            "Subjects locked out after repeated failed verification",
        )

    @property
    def histogram(self) -> Any:
        self._build()
        return self._histogram

    @property
    def counter(self) -> Any:
        self._build()
        return self._counter

    @property
    def lockout_counter(self) -> Any:
        self._build()
        return self._lockout_counter


_registry = _AuthMetricsRegistry()


def _emit(what: str, update: Callable[[], object]) -> None:
    try:
        update()
    except Exception:  # noqa: BLE001
        logger.debug("Could not update %s metric", what, exc_info=True)


class AuthMetrics:
    """Static entry points used by the services."""

    @staticmethod
    @contextmanager
    def operation(operation: str, *, method: str = "unknown") -> Iterator[None]:
        """Time ``operation`` and count it as ``success`` or ``error``.

        Args:
            operation: ``sign_in``, ``verify``, ``send`` or ``refresh``.
            method: ``password``, ``totp``, ``otp`` or ``recovery``.
        """
        outcome = "success"
        started = time.monotonic()
        try:
            yield
        except Exception:
            outcome = "error"
            raise
        finally:
            elapsed = time.monotonic() - started
            histogram = _registry.histogram
            counter = _registry.counter
            if histogram:
                _emit(
                    "duration",
                    lambda: histogram.labels(
                        method=method, operation=operation
                    ).observe(elapsed),
                )
            if counter:
                _emit(
                    "operation",
                    lambda: counter.labels(
                        method=method, operation=operation, result=outcome
                    ).inc(),
                )

    @staticmethod
    def record_event(event: AuthAuditEvent) -> None:
        """Count an audit event, labelled by its method or channel."""
        counter = _registry.counter
        if not counter:
            return
        label = event.metadata.get("method") or event.metadata.get("channel")
        _emit(
            "audit",
            lambda: counter.labels(
                method=str(label or "unknown"),
                operation=event.event_type.value,
                result="success" if event.success else "failure",
            ).inc(),
        )

    @staticmethod
    def record_lockout() -> None:
        lockouts = _registry.lockout_counter
        if lockouts:
            _emit("lockout", lockouts.inc)


__all__: list[str] = ["AuthMetrics"]
