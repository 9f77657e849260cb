"""
Store interface consumed by the identity core.

A store keeps entities by (type, id), answers predicate lookups, and commits
a batch of upserts and deletions atomically. Unique constraints and
read-before-write preconditions are enforced at this boundary; a violating
save raises UniqueConstraintError or StaleWriteError and changes nothing.
"""

from typing import Callable, Iterable, List, Optional, Type, TypeVar

T = TypeVar('T')

Predicate = Callable[[T], bool]


class Store:
    """Persistence collaborator. Entities must expose an `id` attribute."""

    def get(self, entity_type: Type[T], entity_id: str) -> Optional[T]:
        raise NotImplementedError

    def find_one(self, entity_type: Type[T], predicate: Predicate) -> Optional[T]:
        raise NotImplementedError

    def find_all(self, entity_type: Type[T], predicate: Optional[Predicate] = None) -> List[T]:
        raise NotImplementedError

    def exists(self, entity_type: Type[T], predicate: Predicate) -> bool:
        return self.find_one(entity_type, predicate) is not None

    def count(self, entity_type: Type[T], predicate: Optional[Predicate] = None) -> int:
        return len(self.find_all(entity_type, predicate))

    def save(self, entities: Iterable[object], delete: Iterable[object] = (),
             expected: Iterable[object] = ()) -> None:
        """
        Commit upserts and deletions as one unit.

        Args:
            entities: Entities to insert or replace
            delete: Entities to remove (matched by type and id)
            expected: Entities that must still be stored exactly as given;
                a single-use credential passes the row it read here

        Raises:
            UniqueConstraintError: If the result would break a unique index
            StaleWriteError: If an expected row was changed or removed
            DependencyFailureError: If the backend cannot commit
        """
        raise NotImplementedError
