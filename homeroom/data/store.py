"""
Document store — the persistence interface every service is written against.

Documents are JSON-shaped dicts addressed by (namespace, collection, id). The
namespace is the family code; services never look inside it. Two
implementations exist: MemoryStore here (tests, demos) and SqliteStore in
database.py (on-disk).

Each document carries a version counter that goes up by one on every write.
set() and delete() accept `expected_version` to turn into conditional writes.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from homeroom.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

Doc = Dict[str, Any]
Where = Callable[[Doc], bool]
Listener = Callable[[Any], None]
_ListenerKey = Tuple[str, str, Optional[str]]


class DocumentStore:
    """
    Base class holding the document semantics (merge, versions, queries,
    subscriptions). Subclasses only provide the four storage primitives.
    """

    def __init__(self) -> None:
        self._listeners: Dict[_ListenerKey, List[Listener]] = defaultdict(list)
        self._lock = threading.RLock()

    # ── Storage primitives (subclass) ───────────────────────────────────────

    def _read(self, namespace: str, collection: str, doc_id: str) -> Optional[Tuple[Doc, int]]:
        raise NotImplementedError

    def _write(self, namespace: str, collection: str, doc_id: str, data: Doc, version: int) -> None:
        raise NotImplementedError

    def _remove(self, namespace: str, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def _scan(self, namespace: str, collection: str) -> List[Tuple[str, Doc]]:
        raise NotImplementedError

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            yield

    # ── Single-document operations ──────────────────────────────────────────

    def get(self, namespace: str, collection: str, doc_id: str) -> Optional[Doc]:
        """Return the document with its id under the "id" key, or None."""
        rec = self._read(namespace, collection, doc_id)
        if rec is None:
            return None
        return _with_id(doc_id, rec[0])

    def get_with_version(
        self, namespace: str, collection: str, doc_id: str
    ) -> Tuple[Optional[Doc], int]:
        """The document and the version it was read at, from a single read."""
        with self._transaction():
            rec = self._read(namespace, collection, doc_id)
        if rec is None:
            return None, 0
        return _with_id(doc_id, rec[0]), rec[1]

    def version(self, namespace: str, collection: str, doc_id: str) -> int:
        """Current version of a document; 0 when it doesn't exist."""
        rec = self._read(namespace, collection, doc_id)
        return rec[1] if rec else 0

    def set(
        self,
        namespace: str,
        collection: str,
        doc_id: str,
        data: Doc,
        merge: bool = False,
        expected_version: Optional[int] = None,
    ) -> int:
        """Create or replace a document (or merge into it). Returns the new version."""
        with self._transaction():
            rec = self._read(namespace, collection, doc_id)
            current = rec[1] if rec else 0
            _check_version(collection, doc_id, current, expected_version)
            body = dict(rec[0]) if (merge and rec) else {}
            body.update({k: v for k, v in data.items() if k != "id"})
            self._write(namespace, collection, doc_id, body, current + 1)
        self._notify(namespace, collection, doc_id)
        return current + 1

    def update(self, namespace: str, collection: str, doc_id: str, data: Doc) -> int:
        """Merge fields into an existing document. Missing document → NotFoundError."""
        with self._transaction():
            rec = self._read(namespace, collection, doc_id)
            if rec is None:
                raise NotFoundError("document", f"{collection}/{doc_id}")
            body, current = rec
            body.update({k: v for k, v in data.items() if k != "id"})
            self._write(namespace, collection, doc_id, body, current + 1)
        self._notify(namespace, collection, doc_id)
        return current + 1

    def delete(
        self,
        namespace: str,
        collection: str,
        doc_id: str,
        expected_version: Optional[int] = None,
    ) -> bool:
        """Delete a document. Returns False if there was nothing to delete."""
        with self._transaction():
            rec = self._read(namespace, collection, doc_id)
            _check_version(collection, doc_id, rec[1] if rec else 0, expected_version)
            if rec is None:
                return False
            self._remove(namespace, collection, doc_id)
        self._notify(namespace, collection, doc_id)
        return True

    def add(self, namespace: str, collection: str, data: Doc) -> str:
        """Insert a document under a generated id and return the id."""
        doc_id = uuid.uuid4().hex
        self.set(namespace, collection, doc_id, data)
        return doc_id

    # ── Collection operations ───────────────────────────────────────────────

    def query(
        self,
        namespace: str,
        collection: str,
        where: Optional[Where] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Doc]:
        """Matching documents, ordered by a field. Missing values sort last."""
        docs = [_with_id(doc_id, data) for doc_id, data in self._scan(namespace, collection)]
        if where is not None:
            docs = [d for d in docs if where(d)]
        if order_by:
            present = [d for d in docs if d.get(order_by) is not None]
            missing = [d for d in docs if d.get(order_by) is None]
            present.sort(key=lambda d: d[order_by], reverse=descending)
            docs = present + missing
        if limit is not None:
            docs = docs[:limit]
        return docs

    def subscribe(
        self,
        namespace: str,
        collection: str,
        callback: Listener,
        doc_id: Optional[str] = None,
    ) -> Callable[[], None]:
        """
        Call `callback` now and after every change.

        With doc_id the callback gets that document (None once deleted);
        without it, the whole collection as a list. Returns an unsubscribe
        function.
        """
        key = (namespace, collection, doc_id)
        self._listeners[key].append(callback)
        callback(self._snapshot(key))

        def unsubscribe() -> None:
            listeners = self._listeners.get(key)
            if listeners and callback in listeners:
                listeners.remove(callback)
                if not listeners:
                    del self._listeners[key]

        return unsubscribe

    # ── Internal ────────────────────────────────────────────────────────────

    def _snapshot(self, key: _ListenerKey) -> Any:
        namespace, collection, doc_id = key
        if doc_id is not None:
            return self.get(namespace, collection, doc_id)
        return self.query(namespace, collection)

    def _notify(self, namespace: str, collection: str, doc_id: str) -> None:
        for key in ((namespace, collection, doc_id), (namespace, collection, None)):
            listeners = list(self._listeners.get(key, ()))
            if not listeners:
                continue
            snapshot = self._snapshot(key)
            for cb in listeners:
                try:
                    cb(copy.deepcopy(snapshot))
                except Exception:
                    logger.exception("Subscriber for %s/%s failed.", collection, key[2] or "*")


class MemoryStore(DocumentStore):
    """Dict-backed store. State lives on the instance, one per test or process."""

    def __init__(self) -> None:
        super().__init__()
        self._docs: Dict[Tuple[str, str], Dict[str, Tuple[Doc, int]]] = defaultdict(dict)
        self.write_count = 0

    def _read(self, namespace, collection, doc_id):
        rec = self._docs[(namespace, collection)].get(doc_id)
        if rec is None:
            return None
        return copy.deepcopy(rec[0]), rec[1]

    def _write(self, namespace, collection, doc_id, data, version):
        self._docs[(namespace, collection)][doc_id] = (copy.deepcopy(data), version)
        self.write_count += 1

    def _remove(self, namespace, collection, doc_id):
        self._docs[(namespace, collection)].pop(doc_id, None)
        self.write_count += 1

    def _scan(self, namespace, collection):
        return [
            (doc_id, copy.deepcopy(data))
            for doc_id, (data, _) in self._docs[(namespace, collection)].items()
        ]


def _with_id(doc_id: str, data: Doc) -> Doc:
    doc = dict(data)
    doc["id"] = doc_id
    return doc


def _check_version(collection: str, doc_id: str, current: int, expected: Optional[int]) -> None:
    if expected is not None and current != expected:
        raise ConflictError(
            f"{collection}/{doc_id} is at version {current}, expected {expected}."
        )
