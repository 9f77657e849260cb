"""
Tests for the in-memory store.

Tests:
- Copy-on-read and copy-on-write isolation
- Atomic saves with unique index checks
- Conditional saves against rows read earlier
- Predicate lookups
"""

import pytest

from identityvault.exceptions import ConflictError, StaleWriteError, UniqueConstraintError
from identityvault.models import Session, TempCode, TempCodePurpose, User
from identityvault.storage import MemoryStore

from .conftest import START


def make_user(user_id, email, username=None):
    return User(id=user_id, email=email, hashed_password="x", username=username)


class TestMemoryStore:
    """Unit tests for MemoryStore."""

    def setup_method(self):
        self.store = MemoryStore()

    def test_get_returns_copy(self):
        """Mutating a fetched entity does not touch the store."""
        self.store.save([make_user("u1", "a@example.com")])

        fetched = self.store.get(User, "u1")
        fetched.bio = "changed"

        assert self.store.get(User, "u1").bio == ""

    def test_saved_entity_is_copied(self):
        """Mutating an entity after saving it does not touch the store."""
        user = make_user("u1", "a@example.com")
        self.store.save([user])
        user.email = "b@example.com"

        assert self.store.get(User, "u1").email == "a@example.com"

    def test_missing_entity(self):
        assert self.store.get(User, "nope") is None
        assert self.store.find_one(User, lambda u: True) is None
        assert self.store.find_all(User) == []

    def test_duplicate_email_rejected(self):
        """Emails are unique regardless of case."""
        self.store.save([make_user("u1", "a@example.com")])

        with pytest.raises(UniqueConstraintError) as exc_info:
            self.store.save([make_user("u2", "A@example.com")])

        assert exc_info.value.constraint == 'users.email'
        assert self.store.get(User, "u2") is None

    def test_duplicate_username_rejected(self):
        self.store.save([make_user("u1", "a@example.com", "alice")])

        with pytest.raises(UniqueConstraintError) as exc_info:
            self.store.save([make_user("u2", "b@example.com", "alice")])

        assert exc_info.value.constraint == 'users.username'

    def test_missing_usernames_not_indexed(self):
        """Any number of users may have no username."""
        self.store.save([make_user("u1", "a@example.com"), make_user("u2", "b@example.com")])
        assert self.store.count(User) == 2

    def test_failed_save_changes_nothing(self):
        """A violation anywhere in the batch rolls back every change."""
        self.store.save([make_user("u1", "a@example.com")])
        session = Session(id="s1", user_id="u1", expires_at=START)

        with pytest.raises(UniqueConstraintError):
            self.store.save([session, make_user("u2", "a@example.com")])

        assert self.store.get(Session, "s1") is None
        assert self.store.count(User) == 1

    def test_delete_and_insert_in_one_save(self):
        """Freeing a unique key and reusing it in the same save is allowed."""
        old = make_user("u1", "a@example.com")
        self.store.save([old])

        self.store.save([make_user("u2", "a@example.com")], delete=[old])

        assert self.store.get(User, "u1") is None
        assert self.store.get(User, "u2").email == "a@example.com"

    def test_upsert_replaces(self):
        user = make_user("u1", "a@example.com")
        self.store.save([user])
        user.bio = "hello"
        self.store.save([user])

        assert self.store.get(User, "u1").bio == "hello"
        assert self.store.count(User) == 1

    def test_predicates(self):
        self.store.save([
            Session(id="s1", user_id="u1", expires_at=START),
            Session(id="s2", user_id="u1", expires_at=START),
            Session(id="s3", user_id="u2", expires_at=START),
        ])

        assert self.store.count(Session, lambda s: s.user_id == "u1") == 2
        assert self.store.exists(Session, lambda s: s.user_id == "u2")
        assert not self.store.exists(Session, lambda s: s.user_id == "u3")
        assert {s.id for s in self.store.find_all(Session, lambda s: s.user_id == "u1")} == {"s1", "s2"}

    def test_clear(self):
        self.store.save([make_user("u1", "a@example.com")])
        self.store.clear()
        assert self.store.count(User) == 0


class TestConditionalSave:
    """Saves that require rows to be unchanged since they were read."""

    def setup_method(self):
        self.store = MemoryStore()
        self.code = TempCode(
            id="c1", purpose=TempCodePurpose.VERIFY_EMAIL, for_id="u1",
            hashed_code="h", code_salt="s", expires_at=START, created_at=START,
        )
        self.store.save([make_user("u1", "a@example.com"), self.code])

    def test_unchanged_row_commits(self):
        read = self.store.get(TempCode, "c1")

        self.store.save([], delete=[read], expected=[read])

        assert self.store.get(TempCode, "c1") is None

    def test_second_delete_of_same_row_fails(self):
        """Two holders of one record: only the first delete commits."""
        first = self.store.get(TempCode, "c1")
        second = self.store.get(TempCode, "c1")
        self.store.save([], delete=[first], expected=[first])

        with pytest.raises(StaleWriteError) as exc_info:
            self.store.save([make_user("u2", "b@example.com")], delete=[second], expected=[second])

        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.entity_id == "c1"
        assert self.store.get(User, "u2") is None

    def test_changed_row_fails(self):
        """A row edited by another writer no longer matches what was read."""
        read = self.store.get(User, "u1")
        other = self.store.get(User, "u1")
        other.bio = "edited"
        self.store.save([other])

        mine = self.store.get(User, "u1")
        mine.bio = "mine"
        with pytest.raises(StaleWriteError):
            self.store.save([mine], expected=[read])

        assert self.store.get(User, "u1").bio == "edited"
