"""Unit tests for the SQL second-factor profile repository."""

from datetime import datetime

import pytest

NOW = datetime(2030, 1, 1, 12, 0, 0)


@pytest.mark.unit
class TestSqlSecondFactorRepo:
    @pytest.mark.asyncio
    async def test_get_missing_profile(self, profile_repo, test_user):
        assert await profile_repo.get(test_user.id) is None

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, profile_repo, test_user):
        first = await profile_repo.get_or_create(test_user.id)
        second = await profile_repo.get_or_create(test_user.id)
        assert first.id == second.id
        assert first.totp_enabled is False
        assert first.backup_codes_hash == []
        assert first.has_pending_secret is False

    @pytest.mark.asyncio
    async def test_pending_secret_refused_once_enabled(self, profile_repo, test_user):
        await profile_repo.get_or_create(test_user.id)
        assert await profile_repo.store_pending_secret(test_user.id, "cipher-1") is True

        assert await profile_repo.enable_totp(
            test_user.id, (await profile_repo.get(test_user.id)).version, ["h1", "h2"], verified_at=NOW
        )
        assert await profile_repo.store_pending_secret(test_user.id, "cipher-2") is False

        profile = await profile_repo.get(test_user.id)
        assert profile.totp_secret_ciphertext == "cipher-1"
        assert profile.totp_enabled is True
        assert profile.totp_verified_at == NOW

    @pytest.mark.asyncio
    async def test_enable_totp_refuses_replaced_pending_secret(self, profile_repo, test_user):
        await profile_repo.get_or_create(test_user.id)
        await profile_repo.store_pending_secret(test_user.id, "cipher-1")
        verified_version = (await profile_repo.get(test_user.id)).version

        # A second setup replaces the secret between verification and activation
        await profile_repo.store_pending_secret(test_user.id, "cipher-2")

        assert (
            await profile_repo.enable_totp(test_user.id, verified_version, ["h1"], verified_at=NOW)
            is False
        )
        profile = await profile_repo.get(test_user.id)
        assert profile.totp_enabled is False
        assert profile.totp_secret_ciphertext == "cipher-2"
        assert profile.backup_codes_hash == []

    @pytest.mark.asyncio
    async def test_enable_totp_applies_once(self, profile_repo, test_user):
        await profile_repo.get_or_create(test_user.id)
        await profile_repo.store_pending_secret(test_user.id, "cipher")
        version = (await profile_repo.get(test_user.id)).version

        assert await profile_repo.enable_totp(test_user.id, version, ["h1"], verified_at=NOW) is True
        assert await profile_repo.enable_totp(test_user.id, version, ["h2"], verified_at=NOW) is False
        assert (await profile_repo.get(test_user.id)).backup_codes_hash == ["h1"]

    @pytest.mark.asyncio
    async def test_consume_backup_code_checks_version(self, profile_repo, test_user):
        await profile_repo.get_or_create(test_user.id)
        await profile_repo.store_pending_secret(test_user.id, "cipher")
        assert await profile_repo.enable_totp(
            test_user.id, (await profile_repo.get(test_user.id)).version, ["h1", "h2"], verified_at=NOW
        )
        version = (await profile_repo.get(test_user.id)).version

        assert await profile_repo.consume_backup_code(test_user.id, version, ["h2"]) is True
        # Second writer read the same version
        assert await profile_repo.consume_backup_code(test_user.id, version, ["h1"]) is False

        profile = await profile_repo.get(test_user.id)
        assert profile.backup_codes_hash == ["h2"]
        assert profile.backup_codes_used == 1
        assert profile.version == version + 1

    @pytest.mark.asyncio
    async def test_replace_backup_codes_resets_counter(self, profile_repo, test_user):
        await profile_repo.get_or_create(test_user.id)
        assert await profile_repo.enable_totp(
            test_user.id, (await profile_repo.get(test_user.id)).version, ["h1", "h2"], verified_at=NOW
        )
        version = (await profile_repo.get(test_user.id)).version
        await profile_repo.consume_backup_code(test_user.id, version, ["h2"])

        await profile_repo.replace_backup_codes(test_user.id, ["n1", "n2", "n3"])

        profile = await profile_repo.get(test_user.id)
        assert profile.backup_codes_hash == ["n1", "n2", "n3"]
        assert profile.backup_codes_used == 0

    @pytest.mark.asyncio
    async def test_clear_totp(self, profile_repo, test_user):
        await profile_repo.get_or_create(test_user.id)
        await profile_repo.store_pending_secret(test_user.id, "cipher")
        assert await profile_repo.enable_totp(
            test_user.id, (await profile_repo.get(test_user.id)).version, ["h1"], verified_at=NOW
        )
        await profile_repo.set_webauthn_enabled(test_user.id, True)

        await profile_repo.clear_totp(test_user.id)

        profile = await profile_repo.get(test_user.id)
        assert profile.totp_enabled is False
        assert profile.totp_secret_ciphertext is None
        assert profile.totp_verified_at is None
        assert profile.backup_codes_hash == []
        assert profile.webauthn_enabled is True

    @pytest.mark.asyncio
    async def test_stamp_last_factor(self, profile_repo, test_user):
        await profile_repo.get_or_create(test_user.id)
        await profile_repo.stamp_last_factor(test_user.id, NOW)
        assert (await profile_repo.get(test_user.id)).last_factor_at == NOW
