"""
Shared fixtures for the IdentityVault test suite.

Argon2 runs with the cheapest parameters so hashing stays fast; the clock is
frozen so expiry and TOTP steps are deterministic.
"""

import re
from datetime import datetime, timezone

import pytest

from identityvault.auth import Argon2PasswordHasher, IdentityService
from identityvault.clock import FrozenClock
from identityvault.config import Argon2Parameters, IdentityConfig
from identityvault.integration import EmailMessage, MemoryMailer
from identityvault.storage import MemoryStore

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

STRONG_PASSWORD = "Tr0ub4dor&3horse!"
OTHER_STRONG_PASSWORD = "N3w-Secret!Phrase"

FAST_ARGON2 = Argon2Parameters(time_cost=1, memory_cost=8, parallelism=1)


def make_config(**overrides) -> IdentityConfig:
    return IdentityConfig(argon2=FAST_ARGON2, **overrides)


class InterleavingStore(MemoryStore):
    """
    MemoryStore that runs one competing operation right before the next
    conditional save commits, as if both requests read before either wrote.
    """

    def __init__(self):
        super().__init__()
        self.before_conditional_save = None

    def save(self, entities, delete=(), expected=()):
        expected = list(expected)
        competitor = self.before_conditional_save
        if expected and competitor is not None:
            self.before_conditional_save = None
            competitor()
        super().save(entities, delete=delete, expected=expected)


def code_from(message: EmailMessage) -> str:
    """Pull the one-time code out of a delivered email."""
    match = re.search(r'<strong>(.+?)</strong>', message.html_body)
    assert match, "email carries no code"
    return match.group(1)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def mailer():
    return MemoryMailer()


@pytest.fixture
def hasher(config):
    return Argon2PasswordHasher(config.argon2)


@pytest.fixture
def service(store, mailer, clock, config):
    return IdentityService(store, mailer, clock=clock, config=config)


@pytest.fixture
def user(service):
    return service.sign_up("alice@example.com", STRONG_PASSWORD, username="alice")
