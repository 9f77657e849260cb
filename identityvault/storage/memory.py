"""
In-memory Store

Reference implementation of the Store interface:
- Entities are deep-copied on the way in and out, so a caller's unsaved
  mutations never leak into the store
- save() stages every change, checks all unique indexes, then swaps the
  staged tables in; a violation leaves the store untouched
- Expected rows are compared with the committed state first, so two
  redemptions of the same single-use record cannot both commit
- A single lock serializes commits, standing in for a database transaction
"""

import copy
import logging
import threading
from collections import Counter
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Tuple, Type

from ..exceptions import StaleWriteError, UniqueConstraintError
from ..models import TempCode, User
from .base import Predicate, Store, T

logger = logging.getLogger(__name__)

IndexKey = Callable[[object], Optional[Hashable]]

# (constraint name, key function); None keys are not indexed
UNIQUE_INDEXES: Dict[type, List[Tuple[str, IndexKey]]] = {
    User: [
        ('users.email', lambda u: u.email.lower()),
        ('users.username', lambda u: u.username),
    ],
    TempCode: [
        ('temp_codes.purpose_for_id', lambda c: (c.purpose, c.for_id)),
    ],
}


class MemoryStore(Store):
    """
    Dict-backed store with transactional saves.

    Example:
        >>> store = MemoryStore()
        >>> store.save([user])
        >>> store.get(User, user.id) == user
        True
    """

    def __init__(self, unique_indexes: Optional[Dict[type, List[Tuple[str, IndexKey]]]] = None):
        self._tables: Dict[type, Dict[str, object]] = {}
        self._indexes = UNIQUE_INDEXES if unique_indexes is None else unique_indexes
        self._lock = threading.RLock()

    # ========================================================================
    # Reads
    # ========================================================================

    def get(self, entity_type: Type[T], entity_id: str) -> Optional[T]:
        with self._lock:
            entity = self._tables.get(entity_type, {}).get(entity_id)
            return copy.deepcopy(entity)

    def find_one(self, entity_type: Type[T], predicate: Predicate) -> Optional[T]:
        with self._lock:
            for entity in self._tables.get(entity_type, {}).values():
                if predicate(entity):
                    return copy.deepcopy(entity)
        return None

    def find_all(self, entity_type: Type[T], predicate: Optional[Predicate] = None) -> List[T]:
        with self._lock:
            return [
                copy.deepcopy(entity)
                for entity in self._tables.get(entity_type, {}).values()
                if predicate is None or predicate(entity)
            ]

    def exists(self, entity_type: Type[T], predicate: Predicate) -> bool:
        with self._lock:
            return any(predicate(e) for e in self._tables.get(entity_type, {}).values())

    def count(self, entity_type: Type[T], predicate: Optional[Predicate] = None) -> int:
        with self._lock:
            return sum(
                1 for e in self._tables.get(entity_type, {}).values()
                if predicate is None or predicate(e)
            )

    # ========================================================================
    # Writes
    # ========================================================================

    def save(self, entities: Iterable[object], delete: Iterable[object] = (),
             expected: Iterable[object] = ()) -> None:
        entities = list(entities)
        delete = list(delete)
        expected = list(expected)

        with self._lock:
            for entity in expected:
                current = self._tables.get(type(entity), {}).get(entity.id)
                if current is None or current != entity:
                    raise StaleWriteError(type(entity).__name__, entity.id)

            staged: Dict[type, Dict[str, object]] = {}

            def table(entity_type: type) -> Dict[str, object]:
                if entity_type not in staged:
                    staged[entity_type] = dict(self._tables.get(entity_type, {}))
                return staged[entity_type]

            for entity in delete:
                table(type(entity)).pop(entity.id, None)

            for entity in entities:
                table(type(entity))[entity.id] = copy.deepcopy(entity)

            for entity_type, rows in staged.items():
                self._check_unique(entity_type, rows)

            self._tables.update(staged)

        logger.debug("Committed %d upserts and %d deletions", len(entities), len(delete))

    def _check_unique(self, entity_type: type, rows: Dict[str, object]) -> None:
        for name, key in self._indexes.get(entity_type, []):
            keys = Counter(k for k in (key(row) for row in rows.values()) if k is not None)
            if any(n > 1 for n in keys.values()):
                raise UniqueConstraintError(name)

    def clear(self) -> None:
        with self._lock:
            self._tables.clear()
