# Authentication Module
"""
Authentication implementations including:
- Password hashing (Argon2id) and input validation - credentials.py
- Temporary codes for account changes - temp_codes.py
- TOTP (2FA, RFC 6238) with recovery codes - totp.py
- Sessions - sessions.py
- Account flows tying them together - identity.py

Security features:
- Argon2id for password hashing (PHC winner)
- Constant-time comparison for codes and recovery codes
- Cryptographically secure random tokens
- Single-use codes redeemed with conditional saves
"""

from .credentials import (
    Argon2PasswordHasher,
    HeuristicPasswordScorer,
    PasswordScore,
    PasswordScorer,
)

from .temp_codes import (
    IssuedCode,
    TempCodeService,
)

from .totp import (
    Enrollment,
    SecondFactorCheck,
    SecondFactorOutcome,
    TwoFactorManager,
    provisioning_uri,
    provisioning_qr_svg,
)

from .sessions import SessionManager

from .identity import IdentityService

__all__ = [
    # Credentials
    'Argon2PasswordHasher',
    'HeuristicPasswordScorer',
    'PasswordScore',
    'PasswordScorer',
    # Temporary codes
    'IssuedCode',
    'TempCodeService',
    # TOTP
    'Enrollment',
    'SecondFactorCheck',
    'SecondFactorOutcome',
    'TwoFactorManager',
    'provisioning_uri',
    'provisioning_qr_svg',
    # Sessions
    'SessionManager',
    # Orchestration
    'IdentityService',
]
