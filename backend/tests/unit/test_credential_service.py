"""Unit tests for the possession credential registry."""

from datetime import datetime

import pytest

from authcore.core.errors import InvalidCode
from authcore.services.credential_service import CredentialService

NOW = datetime(2030, 1, 1, 12, 0, 0)


@pytest.mark.unit
class TestNextCounter:
    def setup_method(self):
        self.service = CredentialService(credentials=None, profiles=None, enforce_sign_count=True)

    def test_no_presented_count_increments(self):
        assert self.service.next_counter(0, None) == 1
        assert self.service.next_counter(41, None) == 42

    def test_presented_count_stored(self):
        assert self.service.next_counter(3, 7) == 7

    def test_both_zero_allowed(self):
        # Authenticators that do not implement a counter always report 0
        assert self.service.next_counter(0, 0) == 0

    @pytest.mark.parametrize("stored,presented", [(5, 5), (5, 4), (5, 0)])
    def test_regression_rejected(self, stored, presented):
        with pytest.raises(InvalidCode):
            self.service.next_counter(stored, presented)

    def test_regression_tolerated_when_not_enforced(self):
        lenient = CredentialService(credentials=None, profiles=None, enforce_sign_count=False)
        assert lenient.next_counter(5, 3) == 5


@pytest.mark.unit
class TestCredentialRegistry:
    @pytest.mark.asyncio
    async def test_register_enables_webauthn(self, credential_repo, profile_repo, test_user):
        service = CredentialService(credential_repo, profile_repo)
        credential = await service.register(
            test_user.id, "cred-1", public_key="pk", transports=["internal"], device_name="Laptop"
        )

        assert credential.counter == 0
        assert credential.transports == ["internal"]
        profile = await profile_repo.get(test_user.id)
        assert profile.webauthn_enabled is True
        assert profile.totp_enabled is False

    @pytest.mark.asyncio
    async def test_list_and_get(self, credential_repo, profile_repo, test_user):
        service = CredentialService(credential_repo, profile_repo)
        await service.register(test_user.id, "cred-1")
        await service.register(test_user.id, "cred-2", device_type="cross-platform")

        listed = await service.list_credentials(test_user.id)
        assert {c.credential_id for c in listed} == {"cred-1", "cred-2"}
        assert (await service.get_credential(test_user.id, "cred-2")).device_type == "cross-platform"
        assert await service.get_credential(test_user.id, "missing") is None

    @pytest.mark.asyncio
    async def test_record_use_advances_counter(self, credential_repo, profile_repo, test_user):
        service = CredentialService(credential_repo, profile_repo)
        credential = await service.register(test_user.id, "cred-1")

        assert await service.record_use(credential, None, now=NOW) == 1

        stored = await service.get_credential(test_user.id, "cred-1")
        assert stored.counter == 1
        assert stored.last_used_at == NOW

        assert await service.record_use(stored, 10, now=NOW) == 10

    @pytest.mark.asyncio
    async def test_stale_read_loses_race(self, credential_repo, profile_repo, test_user):
        service = CredentialService(credential_repo, profile_repo)
        credential = await service.register(test_user.id, "cred-1")
        await service.record_use(credential, None, now=NOW)

        # The in-memory row still carries the counter read before the first use
        assert credential.counter == 0

        with pytest.raises(InvalidCode):
            await service.record_use(credential, None, now=NOW)

    @pytest.mark.asyncio
    async def test_regressed_counter_not_stored(self, credential_repo, profile_repo, test_user):
        service = CredentialService(credential_repo, profile_repo, enforce_sign_count=True)
        credential = await service.register(test_user.id, "cred-1")
        await service.record_use(credential, 5, now=NOW)

        stored = await service.get_credential(test_user.id, "cred-1")
        with pytest.raises(InvalidCode):
            await service.record_use(stored, 3, now=NOW)

        assert (await service.get_credential(test_user.id, "cred-1")).counter == 5
