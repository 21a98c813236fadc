from abc import ABC, abstractmethod
from collections.abc import Callable

from meetgrid.models.events import StoredEvent

Mutation = Callable[[StoredEvent], None]


class EventStore(ABC):
    """Persistence for whole Event documents.

    ``update`` is an atomic read-modify-write of a single event: ``mutate``
    edits the loaded document in place and the store bumps ``version`` and
    writes it back, or writes nothing if ``mutate`` raises.
    """

    @abstractmethod
    async def create(self, event: StoredEvent) -> StoredEvent:
        """Insert a new event and return it with ``storage_id`` set.

        Raises ConflictError if the id is taken.
        """

    @abstractmethod
    async def get(self, event_id: str) -> StoredEvent | None: ...

    @abstractmethod
    async def update(self, event_id: str, mutate: Mutation) -> StoredEvent:
        """Apply ``mutate`` atomically. Raises NotFoundError for unknown ids."""

    @abstractmethod
    async def ping(self) -> bool: ...
