"""Tests for derived MFA status."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from stepup_identity.exceptions import SessionError
from stepup_identity.mfa import MfaStatus, MfaStatusTracker
from stepup_identity.models import AssuranceLevel


class TestCheckStatus:
    @pytest.mark.asyncio
    async def test_without_session(self, status_tracker: MfaStatusTracker) -> None:
        status = await status_tracker.check_status()

        assert status == MfaStatus()
        assert not status.is_enabled
        assert not status.is_verified

    @pytest.mark.asyncio
    async def test_password_only_user(
        self, status_tracker: MfaStatusTracker, credential_store, admin_id
    ) -> None:
        await credential_store.sign_in_with_password(
            "admin@example.com", "correct-horse"
        )

        status = await status_tracker.check_status()
        assert not status.is_enabled
        assert not status.is_verified
        assert status.current_level is AssuranceLevel.AAL1
        assert status.next_level is AssuranceLevel.AAL1

    @pytest.mark.asyncio
    async def test_pending_factor_does_not_enable(
        self, status_tracker, credential_store, admin_id, two_factor
    ) -> None:
        await credential_store.sign_in_with_password(
            "admin@example.com", "correct-horse"
        )
        await two_factor.start_enrollment()

        assert not (await status_tracker.check_status()).is_enabled

    @pytest.mark.asyncio
    async def test_after_enrollment(
        self, status_tracker, admin_id, enable_two_factor
    ) -> None:
        await enable_two_factor()

        status = await status_tracker.check_status()
        assert status.is_enabled
        assert status.is_verified
        assert status.current_level is AssuranceLevel.AAL2

    @pytest.mark.asyncio
    async def test_new_sign_in_needs_second_factor(
        self, status_tracker, credential_store, admin_id, enable_two_factor
    ) -> None:
        await enable_two_factor()
        await credential_store.sign_out()
        await credential_store.sign_in_with_password(
            "admin@example.com", "correct-horse"
        )

        status = await status_tracker.check_status()
        assert status.is_enabled
        assert not status.is_verified
        assert status.current_level is AssuranceLevel.AAL1
        assert status.next_level is AssuranceLevel.AAL2

    @pytest.mark.asyncio
    async def test_store_failure_keeps_previous_status(
        self, status_tracker, credential_store, admin_id
    ) -> None:
        await credential_store.sign_in_with_password(
            "admin@example.com", "correct-horse"
        )
        before = await status_tracker.check_status()

        credential_store.get_assurance_levels = AsyncMock(
            side_effect=SessionError("timeout")
        )
        assert await status_tracker.check_status() is before


class TestAuthChanges:
    @pytest.mark.asyncio
    async def test_follows_store_events(
        self, status_tracker, credential_store, admin_id, enable_two_factor
    ) -> None:
        status_tracker.attach()
        status_tracker.attach()
        assert credential_store.events.listener_count == 1

        await enable_two_factor()
        assert status_tracker.status.is_verified

        await credential_store.sign_out()
        assert status_tracker.status == MfaStatus()

    @pytest.mark.asyncio
    async def test_close_detaches(
        self, status_tracker, credential_store, admin_id
    ) -> None:
        status_tracker.attach()
        status_tracker.close()

        await credential_store.sign_in_with_password(
            "admin@example.com", "correct-horse"
        )
        assert credential_store.events.listener_count == 0
        assert status_tracker.status.current_level is None
