"""
Configuration

Module-level defaults for every tunable of the identity core, gathered into
an immutable IdentityConfig that services receive by injection.

Environment overrides use the IDENTITYVAULT_ prefix, e.g.
IDENTITYVAULT_MAX_SESSIONS_PER_USER=5.
"""

import os
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from typing import Mapping, Optional


# Argon2id configuration
# Tuned so a single hash costs roughly 150-300ms on commodity hardware
# - time_cost: number of iterations
# - memory_cost: memory usage in KiB
# - parallelism: number of parallel threads
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536     # 64 MiB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32           # 256-bit hash
ARGON2_SALT_LEN = 16           # 128-bit salt

# Sessions
MAX_SESSIONS_PER_USER = 20
SESSION_MIN_LIFETIME_SECONDS = 60 * 60               # 1 hour
SESSION_MAX_LIFETIME_SECONDS = 365 * 24 * 60 * 60    # 365 days
SESSION_ID_LENGTH = 128

# Temporary codes
TEMP_CODE_TTL_SECONDS = 2 * 60 * 60    # 2 hours
TEMP_CODE_LENGTH = 16
TEMP_CODE_SALT_BYTES = 16

# Two-factor authentication (RFC 6238 defaults)
TOTP_DIGITS = 6
TOTP_INTERVAL = 30
TOTP_VALID_WINDOW = 1          # Accept codes from +/- this many time steps
TOTP_SECRET_BYTES = 20         # 160 bits
TOTP_ISSUER = "IdentityVault"
RECOVERY_CODE_COUNT = 10
RECOVERY_CODE_LENGTH = 12

# Accounts
MIN_PASSWORD_SCORE = 3         # 0..4 scale
USER_ID_LENGTH = 8
MAIL_SENDER = "no-reply@identityvault.local"

ENV_PREFIX = "IDENTITYVAULT_"


@dataclass(frozen=True)
class Argon2Parameters:
    time_cost: int = ARGON2_TIME_COST
    memory_cost: int = ARGON2_MEMORY_COST
    parallelism: int = ARGON2_PARALLELISM
    hash_len: int = ARGON2_HASH_LEN
    salt_len: int = ARGON2_SALT_LEN


@dataclass(frozen=True)
class IdentityConfig:
    """
    All tunables of the identity core.

    Example:
        >>> config = IdentityConfig(max_sessions_per_user=3)
        >>> config.session_min_lifetime
        datetime.timedelta(seconds=3600)
    """
    argon2: Argon2Parameters = field(default_factory=Argon2Parameters)

    max_sessions_per_user: int = MAX_SESSIONS_PER_USER
    session_min_lifetime_seconds: int = SESSION_MIN_LIFETIME_SECONDS
    session_max_lifetime_seconds: int = SESSION_MAX_LIFETIME_SECONDS
    session_id_length: int = SESSION_ID_LENGTH

    temp_code_ttl_seconds: int = TEMP_CODE_TTL_SECONDS
    temp_code_length: int = TEMP_CODE_LENGTH

    totp_digits: int = TOTP_DIGITS
    totp_interval: int = TOTP_INTERVAL
    totp_valid_window: int = TOTP_VALID_WINDOW
    totp_issuer: str = TOTP_ISSUER
    recovery_code_count: int = RECOVERY_CODE_COUNT
    recovery_code_length: int = RECOVERY_CODE_LENGTH

    min_password_score: int = MIN_PASSWORD_SCORE
    user_id_length: int = USER_ID_LENGTH
    mail_sender: str = MAIL_SENDER

    def __post_init__(self):
        if self.max_sessions_per_user < 1:
            raise ValueError("max_sessions_per_user must be at least 1")
        if self.session_min_lifetime_seconds > self.session_max_lifetime_seconds:
            raise ValueError("Session lifetime window is empty")
        if not 0 <= self.min_password_score <= 4:
            raise ValueError("min_password_score must be between 0 and 4")

    @property
    def session_min_lifetime(self) -> timedelta:
        return timedelta(seconds=self.session_min_lifetime_seconds)

    @property
    def session_max_lifetime(self) -> timedelta:
        return timedelta(seconds=self.session_max_lifetime_seconds)

    @property
    def temp_code_ttl(self) -> timedelta:
        return timedelta(seconds=self.temp_code_ttl_seconds)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'IdentityConfig':
        """
        Build a config from IDENTITYVAULT_* environment variables.

        Unknown variables are ignored; unset ones keep their defaults.
        ARGON2 parameters use the IDENTITYVAULT_ARGON2_ prefix.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            IdentityConfig with overrides applied
        """
        environ = os.environ if environ is None else environ
        config = cls()

        overrides = {}
        for f in fields(cls):
            if f.name == 'argon2':
                continue
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is not None:
                overrides[f.name] = _coerce(raw, getattr(config, f.name))

        argon2_overrides = {}
        for f in fields(Argon2Parameters):
            raw = environ.get(ENV_PREFIX + "ARGON2_" + f.name.upper())
            if raw is not None:
                argon2_overrides[f.name] = int(raw)
        if argon2_overrides:
            overrides['argon2'] = replace(config.argon2, **argon2_overrides)

        return replace(config, **overrides)


def _coerce(raw: str, default):
    if isinstance(default, int):
        return int(raw)
    return raw


DEFAULT_CONFIG = IdentityConfig()
