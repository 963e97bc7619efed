# store.py
# Document database interface used by the order and tracking modules,
# plus an in-memory implementation for tests and the demo.
#
# Collections are flat namespaces: orders, serviceProviders, customers,
# ratings, complaints, services.

import copy
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from ..errors import BackendError

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
DocumentHandler = Callable[[Optional[Document]], None]
QueryHandler = Callable[[List[Tuple[str, Document]]], None]
Unsubscribe = Callable[[], None]


class DocumentStore(Protocol):
    """
    What the app needs from the managed document database.

    Listeners are push-based: a handler is invoked once with the current
    snapshot on subscribe, then after every write the backend observes, on
    the same event loop as everything else.
    """

    async def get(self, collection: str, doc_id: str) -> Optional[Document]: ...

    async def update(self, collection: str, doc_id: str, fields: Document) -> None: ...

    async def add(self, collection: str, data: Document) -> str: ...

    async def query(self, collection: str, **equals: Any) -> List[Tuple[str, Document]]: ...

    def subscribe(self, collection: str, doc_id: str, handler: DocumentHandler) -> Unsubscribe: ...

    def subscribe_query(self, collection: str, handler: QueryHandler, **equals: Any) -> Unsubscribe: ...


class InMemoryDocumentStore:
    """
    Dict-backed DocumentStore. Listener callbacks run synchronously after each write.

    Usage:
        store = InMemoryDocumentStore()
        store.put("orders", "o1", {"status": "Order Placed"})
        unsubscribe = store.subscribe("orders", "o1", print)
    """

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Document]] = {}
        self._doc_listeners: Dict[Tuple[str, str], List[DocumentHandler]] = {}
        self._query_listeners: List[Tuple[str, Dict[str, Any], QueryHandler]] = []
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Seeding / inspection
    # ------------------------------------------------------------------

    def put(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or replace a document and notify listeners."""
        self._data.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        self._notify(collection, doc_id)

    def peek(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._data.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    @property
    def listener_count(self) -> int:
        return sum(len(h) for h in self._doc_listeners.values()) + len(self._query_listeners)

    # ------------------------------------------------------------------
    # DocumentStore API
    # ------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self.peek(collection, doc_id)

    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        doc = self._data.get(collection, {}).get(doc_id)
        if doc is None:
            raise BackendError(f"No document {collection}/{doc_id} to update.")
        doc.update(copy.deepcopy(fields))
        logger.debug(f"Updated {collection}/{doc_id}: {sorted(fields)}")
        self._notify(collection, doc_id)

    async def add(self, collection: str, data: Document) -> str:
        doc_id = f"{collection}-{next(self._ids)}"
        self.put(collection, doc_id, data)
        return doc_id

    async def query(self, collection: str, **equals: Any) -> List[Tuple[str, Document]]:
        return self._matching(collection, equals)

    def subscribe(self, collection: str, doc_id: str, handler: DocumentHandler) -> Unsubscribe:
        key = (collection, doc_id)
        self._doc_listeners.setdefault(key, []).append(handler)
        handler(self.peek(collection, doc_id))

        def unsubscribe() -> None:
            handlers = self._doc_listeners.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscribe_query(self, collection: str, handler: QueryHandler, **equals: Any) -> Unsubscribe:
        entry = (collection, dict(equals), handler)
        self._query_listeners.append(entry)
        handler(self._matching(collection, equals))

        def unsubscribe() -> None:
            if entry in self._query_listeners:
                self._query_listeners.remove(entry)

        return unsubscribe

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _matching(self, collection: str, equals: Dict[str, Any]) -> List[Tuple[str, Document]]:
        return [
            (doc_id, copy.deepcopy(doc))
            for doc_id, doc in self._data.get(collection, {}).items()
            if all(doc.get(k) == v for k, v in equals.items())
        ]

    def _notify(self, collection: str, doc_id: str) -> None:
        snapshot = self.peek(collection, doc_id)
        for handler in list(self._doc_listeners.get((collection, doc_id), [])):
            handler(copy.deepcopy(snapshot))
        for coll, equals, handler in list(self._query_listeners):
            if coll == collection:
                handler(self._matching(collection, equals))
