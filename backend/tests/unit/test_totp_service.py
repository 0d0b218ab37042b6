"""Unit tests for the TOTP engine."""

from datetime import datetime, timedelta, timezone

import pyotp
import pytest

from authcore.services.totp_service import TOTPService

svc = TOTPService

# Base32 of the RFC 6238 appendix B SHA-1 seed "12345678901234567890"
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def at_unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@pytest.mark.unit
class TestGenerate:
    @pytest.mark.parametrize(
        "unix_time,expected",
        [
            (59, "287082"),
            (1111111109, "081804"),
            (1111111111, "050471"),
            (1234567890, "005924"),
            (2000000000, "279037"),
        ],
    )
    def test_rfc6238_vectors(self, unix_time, expected):
        assert svc.generate(RFC_SECRET, at=at_unix(unix_time)) == expected

    def test_naive_datetime_is_utc(self):
        naive = datetime(2033, 5, 18, 3, 33, 20)
        assert svc.generate(RFC_SECRET, at=naive) == "279037"

    def test_same_step_same_code(self):
        assert svc.generate(RFC_SECRET, at=at_unix(60)) == svc.generate(RFC_SECRET, at=at_unix(89))

    def test_generate_secret_is_base32(self):
        secret = svc.generate_secret()
        assert len(secret) == 32
        # pyotp rejects secrets that are not valid base32
        assert len(pyotp.TOTP(secret).now()) == 6


@pytest.mark.unit
class TestVerify:
    def setup_method(self):
        self.now = at_unix(2000000000)
        self.code = svc.generate(RFC_SECRET, at=self.now)

    def test_current_code_accepted(self):
        assert svc.verify(RFC_SECRET, self.code, at=self.now) is True

    def test_one_step_either_side_accepted(self):
        assert svc.verify(RFC_SECRET, self.code, at=self.now + timedelta(seconds=30)) is True
        assert svc.verify(RFC_SECRET, self.code, at=self.now - timedelta(seconds=30)) is True

    def test_outside_window_rejected(self):
        assert svc.verify(RFC_SECRET, self.code, at=self.now + timedelta(seconds=90)) is False
        assert svc.verify(RFC_SECRET, self.code, at=self.now - timedelta(seconds=90)) is False

    def test_zero_window_only_accepts_current_step(self):
        later = self.now + timedelta(seconds=30)
        assert svc.verify(RFC_SECRET, self.code, window=0, at=later) is False
        assert svc.verify(RFC_SECRET, self.code, window=0, at=self.now) is True

    def test_spaces_ignored(self):
        spaced = f"{self.code[:3]} {self.code[3:]}"
        assert svc.verify(RFC_SECRET, spaced, at=self.now) is True

    @pytest.mark.parametrize("candidate", ["", "27903", "2790377", "27903a", "ABCD-EF12"])
    def test_malformed_codes_rejected(self, candidate):
        assert svc.verify(RFC_SECRET, candidate, at=self.now) is False

    def test_wrong_code_rejected(self):
        wrong = "000000" if self.code != "000000" else "111111"
        assert svc.verify(RFC_SECRET, wrong, at=self.now) is False

    def test_empty_secret_rejected(self):
        assert svc.verify("", self.code, at=self.now) is False


@pytest.mark.unit
class TestProvisioning:
    def test_uri_contains_account_issuer_and_secret(self):
        uri = svc.provisioning_uri(RFC_SECRET, "alice@example.com", "Authcore")
        assert uri.startswith("otpauth://totp/")
        assert f"secret={RFC_SECRET}" in uri
        assert "issuer=Authcore" in uri
        assert "alice" in uri

    def test_uri_round_trips_through_pyotp(self):
        uri = svc.provisioning_uri(RFC_SECRET, "alice@example.com", "Authcore")
        parsed = pyotp.parse_uri(uri)
        assert parsed.secret == RFC_SECRET
        assert parsed.digits == 6
        assert parsed.interval == 30

    def test_qr_code_is_png_data_uri(self):
        qr = svc.generate_qr_code_base64("otpauth://totp/Authcore:alice?secret=" + RFC_SECRET)
        assert qr.startswith("data:image/png;base64,")
        assert len(qr) > 100
