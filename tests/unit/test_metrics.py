"""Unit tests for auth metrics."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest

from stepup_identity.audit import AuthAuditEvent, AuthEventType
from stepup_identity.observability import AuthMetrics
from stepup_identity.observability import metrics as metrics_mod


@pytest.fixture
def registry() -> Iterator[MagicMock]:
    with patch.object(metrics_mod, "_registry") as registry:
        yield registry


class TestOperation:
    def test_records_success(self, registry: MagicMock) -> None:
        with AuthMetrics.operation("verify", method="otp"):
            pass

        registry.histogram.labels.assert_called_once_with(
            method="otp", operation="verify"
        )
        registry.counter.labels.assert_called_once_with(
            method="otp", operation="verify", result="success"
        )

    def test_records_error_and_reraises(self, registry: MagicMock) -> None:
        with pytest.raises(RuntimeError):
            with AuthMetrics.operation("send", method="email"):
                raise RuntimeError("boom")

        registry.counter.labels.assert_called_once_with(
            method="email", operation="send", result="error"
        )

    def test_broken_backend_does_not_break_operation(
        self, registry: MagicMock
    ) -> None:
        registry.counter.labels.side_effect = ValueError("bad labels")

        with AuthMetrics.operation("refresh"):
            pass


class TestRecordEvent:
    def test_uses_method_label(self, registry: MagicMock) -> None:
        AuthMetrics.record_event(
            AuthAuditEvent(
                event_type=AuthEventType.MFA_FAILED,
                success=False,
                metadata={"method": "totp"},
            )
        )

        registry.counter.labels.assert_called_once_with(
            method="totp", operation="mfa.failed", result="failure"
        )

    def test_falls_back_to_channel(self, registry: MagicMock) -> None:
        AuthMetrics.record_event(
            AuthAuditEvent(
                event_type=AuthEventType.OTP_SENT, metadata={"channel": "phone"}
            )
        )

        registry.counter.labels.assert_called_once_with(
            method="phone", operation="otp.sent", result="success"
        )

    def test_lockout_counter(self, registry: MagicMock) -> None:
        AuthMetrics.record_lockout()

        registry.lockout_counter.inc.assert_called_once_with()


class TestWithoutPrometheus:
    def test_is_noop(self) -> None:
        import builtins

        real_import = builtins.__import__

        def raise_for_prometheus(name, *args, **kwargs):
            if name == "prometheus_client":
                raise ImportError("No module named 'prometheus_client'")
            return real_import(name, *args, **kwargs)

        registry = metrics_mod._AuthMetricsRegistry()
        with (
            patch.object(metrics_mod, "_registry", registry),
            patch("builtins.__import__", side_effect=raise_for_prometheus),
        ):
            with AuthMetrics.operation("sign_in", method="password"):
                pass
            AuthMetrics.record_event(AuthAuditEvent(event_type=AuthEventType.LOGOUT))
            AuthMetrics.record_lockout()

        assert registry.counter is None
        assert registry.histogram is None
