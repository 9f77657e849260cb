# IdentityVault
"""
Account identity core:
- Sign-up and sign-in with Argon2id password hashing
- Bearer sessions with bounded lifetimes and a per-user cap
- Optional TOTP second factor with recovery codes
- Purpose-scoped temporary codes delivered by email

Storage, mail delivery and time are injected collaborators.
"""

from .auth import IdentityService
from .clock import Clock, FrozenClock, SystemClock
from .config import DEFAULT_CONFIG, Argon2Parameters, IdentityConfig
from .exceptions import ErrorKind, FieldError, IdentityError
from .integration import EmailMessage, LoggingMailer, Mailer, MemoryMailer
from .storage import MemoryStore, Store

__version__ = "1.0.0"

__all__ = [
    'IdentityService',
    'Clock',
    'FrozenClock',
    'SystemClock',
    'DEFAULT_CONFIG',
    'Argon2Parameters',
    'IdentityConfig',
    'ErrorKind',
    'FieldError',
    'IdentityError',
    'EmailMessage',
    'LoggingMailer',
    'Mailer',
    'MemoryMailer',
    'MemoryStore',
    'Store',
]
