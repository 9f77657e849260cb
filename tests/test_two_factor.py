"""
Tests for the two-factor authentication manager.

Tests:
- Enrollment and provisioning
- TOTP verification with drift tolerance
- Recovery codes (single use)
- Disabling and regenerating
"""

from datetime import timedelta

import pyotp
import pytest

from identityvault.auth.totp import (
    SecondFactorOutcome, TwoFactorManager, generate_recovery_codes,
    normalize_recovery_code, provisioning_qr_svg, provisioning_uri,
)
from identityvault.exceptions import (
    AlreadyEnabledError, InvalidPasswordError, NotEnabledError, UnauthorizedError,
)
from identityvault.integration.activity import ActivityRecorder
from identityvault.models import ActivityType, TwoFactorAuthentication, User

from .conftest import STRONG_PASSWORD, InterleavingStore


class TestProvisioning:
    """otpauth URIs and QR codes."""

    def test_provisioning_uri(self):
        uri = provisioning_uri("JBSWY3DPEHPK3PXP", "alice@example.com", issuer="IdentityVault")
        assert uri.startswith("otpauth://totp/")
        assert "secret=JBSWY3DPEHPK3PXP" in uri
        assert "issuer=IdentityVault" in uri

    def test_qr_code_svg(self):
        uri = provisioning_uri("JBSWY3DPEHPK3PXP", "alice@example.com")
        assert "svg" in provisioning_qr_svg(uri)

    def test_recovery_code_format(self):
        codes = generate_recovery_codes(10, 12)
        assert len(codes) == 10
        assert len(set(codes)) == 10
        assert all(len(c) == 12 and c.isalnum() and c == c.upper() for c in codes)

    def test_recovery_code_normalization(self):
        assert normalize_recovery_code(" abcd-efgh 1234 ") == "ABCDEFGH1234"


class TestTwoFactorManager:
    """Enrollment and verification against a frozen clock."""

    @pytest.fixture(autouse=True)
    def _manager(self, store, clock, config, hasher, user):
        self.store = store
        self.clock = clock
        self.user = user
        self.activity = ActivityRecorder(store, clock)
        self.manager = TwoFactorManager(store, hasher, clock, config, self.activity)

    def code_at(self, secret, offset_seconds=0):
        return pyotp.TOTP(secret).at(self.clock.now() + timedelta(seconds=offset_seconds))

    def test_not_enrolled_by_default(self):
        assert self.manager.status(self.user) is None
        outcome = self.manager.verify_second_factor(self.user, "123456")
        assert outcome is SecondFactorOutcome.NOT_ENROLLED

    def test_enroll(self):
        """Enrollment stores a base32 secret and returns recovery codes once."""
        enrollment = self.manager.enroll(self.user)

        record = self.manager.status(self.user)
        assert record.secret == enrollment.secret
        assert len(enrollment.secret) == 32
        assert record.recovery_codes == enrollment.recovery_codes
        assert len(enrollment.recovery_codes) == 10
        assert "alice%40example.com" in enrollment.provisioning_uri
        assert enrollment.secret not in repr(enrollment)

    def test_enroll_twice_conflicts(self):
        self.manager.enroll(self.user)
        with pytest.raises(AlreadyEnabledError):
            self.manager.enroll(self.user)

    def test_enroll_records_activity(self):
        self.manager.enroll(self.user)
        history = self.activity.history(self.user.id)
        assert [a.type for a in history] == [ActivityType.TWO_FACTOR_ENABLED]

    def test_current_code_accepted(self):
        enrollment = self.manager.enroll(self.user)
        outcome = self.manager.verify_second_factor(self.user, self.code_at(enrollment.secret))
        assert outcome is SecondFactorOutcome.ACCEPTED

    def test_adjacent_steps_accepted(self):
        """One 30-second step of drift either way is tolerated."""
        enrollment = self.manager.enroll(self.user)
        for offset in (-30, 30):
            code = self.code_at(enrollment.secret, offset)
            assert self.manager.verify_second_factor(self.user, code) is SecondFactorOutcome.ACCEPTED

    def test_distant_step_rejected(self):
        enrollment = self.manager.enroll(self.user)
        stale = self.code_at(enrollment.secret, -120)
        if stale == self.code_at(enrollment.secret):
            pytest.skip("codes collided")
        assert self.manager.verify_second_factor(self.user, stale) is SecondFactorOutcome.REJECTED

    def test_empty_code_rejected(self):
        self.manager.enroll(self.user)
        assert self.manager.verify_second_factor(self.user, "") is SecondFactorOutcome.REJECTED

    def test_recovery_code_single_use(self):
        """A recovery code works once and is then gone."""
        enrollment = self.manager.enroll(self.user)
        code = enrollment.recovery_codes[3]

        first = self.manager.verify_second_factor(self.user, code)
        second = self.manager.verify_second_factor(self.user, code)

        assert first is SecondFactorOutcome.RECOVERY_CODE_CONSUMED
        assert second is SecondFactorOutcome.REJECTED
        remaining = self.manager.status(self.user).recovery_codes
        assert code not in remaining
        assert len(remaining) == 9

    def test_recovery_code_case_insensitive(self):
        enrollment = self.manager.enroll(self.user)
        code = enrollment.recovery_codes[0]
        formatted = f"{code[:6].lower()}-{code[6:]}"
        assert self.manager.verify_second_factor(self.user, formatted) is SecondFactorOutcome.RECOVERY_CODE_CONSUMED

    def test_check_has_no_side_effects(self):
        """check_second_factor returns the updated record but saves nothing."""
        enrollment = self.manager.enroll(self.user)
        code = enrollment.recovery_codes[0]

        check = self.manager.check_second_factor(self.user, code)

        assert check.outcome is SecondFactorOutcome.RECOVERY_CODE_CONSUMED
        assert code not in check.updated.recovery_codes
        assert code in check.previous.recovery_codes
        assert code in self.manager.status(self.user).recovery_codes

    def test_disable_requires_password(self):
        self.manager.enroll(self.user)

        with pytest.raises(InvalidPasswordError) as exc_info:
            self.manager.disable(self.user, "wrong password")
        assert isinstance(exc_info.value, UnauthorizedError)
        assert self.manager.status(self.user) is not None

    def test_disable(self):
        self.manager.enroll(self.user)
        assert self.manager.disable(self.user, STRONG_PASSWORD)
        assert self.store.get(TwoFactorAuthentication, self.user.id) is None

    def test_disable_when_not_enrolled(self):
        with pytest.raises(NotEnabledError):
            self.manager.disable(self.user, STRONG_PASSWORD)

    def test_regenerate_replaces_all_codes(self):
        enrollment = self.manager.enroll(self.user)

        codes = self.manager.regenerate_recovery_codes(self.user)

        assert len(codes) == 10
        assert not set(codes) & set(enrollment.recovery_codes)
        old = enrollment.recovery_codes[0]
        assert self.manager.verify_second_factor(self.user, old) is SecondFactorOutcome.REJECTED

    def test_regenerate_when_not_enrolled(self):
        with pytest.raises(NotEnabledError):
            self.manager.regenerate_recovery_codes(self.user)

    def test_recovery_code_redeemed_once_under_interleaving(self, clock, config, hasher):
        """Two verifications that both read the code before saving: one wins."""
        store = InterleavingStore()
        user = User(id="u1", email="bob@example.com", hashed_password=hasher.hash_password(STRONG_PASSWORD))
        store.save([user])
        manager = TwoFactorManager(store, hasher, clock, config)
        code = manager.enroll(user).recovery_codes[0]
        competing = []
        store.before_conditional_save = lambda: competing.append(manager.verify_second_factor(user, code))

        late = manager.verify_second_factor(user, code)

        assert competing == [SecondFactorOutcome.RECOVERY_CODE_CONSUMED]
        assert late is SecondFactorOutcome.REJECTED
        assert len(manager.status(user).recovery_codes) == 9
