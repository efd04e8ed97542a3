"""
Document and Object Storage

Key-value document store with partial-field updates, plus object storage
for generated audio. The pipeline only depends on the abstract
interfaces; the in-memory, JSON-file and local-directory implementations
serve tests and single-host deployments.
"""

import copy
import json
import logging
import operator
import secrets
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import StorageError

logger = logging.getLogger(__name__)

Filter = Tuple[str, str, Any]

_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}

_MISSING = object()


def _get_field(data: Dict[str, Any], field_path: str) -> Any:
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_field(data: Dict[str, Any], field_path: str, value: Any) -> None:
    parts = field_path.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def _split_path(path: str) -> Tuple[str, str]:
    path = path.strip("/")
    if "/" not in path:
        logger.error(f"Invalid document path: {path}")
        raise StorageError("Invalid record location.")
    collection, doc_id = path.rsplit("/", 1)
    return collection, doc_id


class DocumentStore(ABC):
    """Document store addressed by slash-separated paths (collection/doc/...)."""

    @abstractmethod
    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the document, or None if it does not exist."""
        pass

    @abstractmethod
    async def set(self, path: str, data: Dict[str, Any]) -> None:
        """Create or replace a whole document."""
        pass

    @abstractmethod
    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        """
        Update only the given fields of an existing document.

        Keys may be dotted paths ("processing.stage") to update nested
        fields without touching their siblings.

        Raises:
            StorageError: If the document does not exist
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """Return (document id, data) pairs matching all equality/range filters."""
        pass


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None):
        self.documents: Dict[str, Dict[str, Any]] = copy.deepcopy(documents or {})

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        data = self.documents.get(path.strip("/"))
        return copy.deepcopy(data) if data is not None else None

    async def set(self, path: str, data: Dict[str, Any]) -> None:
        _split_path(path)
        self.documents[path.strip("/")] = copy.deepcopy(data)
        self._persist()

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        key = path.strip("/")
        if key not in self.documents:
            logger.error(f"Document not found: {key}")
            raise StorageError("The requested record could not be found.")

        document = self.documents[key]
        for field_path, value in fields.items():
            _set_field(document, field_path, copy.deepcopy(value))
        self._persist()

    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        collection = collection.strip("/")
        filters = list(filters)
        for _, op, _ in filters:
            if op not in _OPERATORS:
                logger.error(f"Unsupported query operator: {op}")
                raise StorageError("The record store rejected a query.")

        matches = []
        for path, data in self.documents.items():
            parent, doc_id = path.rsplit("/", 1)
            if parent != collection:
                continue
            if all(self._matches(data, f) for f in filters):
                matches.append((doc_id, copy.deepcopy(data)))

        if order_by:
            matches = [m for m in matches if _get_field(m[1], order_by) is not _MISSING]
            matches.sort(key=lambda m: _get_field(m[1], order_by), reverse=descending)

        if limit is not None:
            matches = matches[:limit]
        return matches

    @staticmethod
    def _matches(data: Dict[str, Any], query_filter: Filter) -> bool:
        field_path, op, expected = query_filter
        value = _get_field(data, field_path)
        if value is _MISSING or value is None:
            return False
        try:
            return bool(_OPERATORS[op](value, expected))
        except TypeError:
            return False

    def _persist(self) -> None:
        """Hook for subclasses that keep the documents somewhere durable."""
        pass


class JsonFileDocumentStore(InMemoryDocumentStore):
    """
    Document store persisted to a single JSON file.

    State is rewritten after every write so a restarted worker picks up
    exactly what the previous one checkpointed.
    """

    def __init__(self, state_file: Path):
        super().__init__()
        self.state_file = Path(state_file)
        self._load_state()

    def _load_state(self):
        """Load documents from disk."""
        if not self.state_file.exists():
            return
        try:
            self.documents = json.loads(self.state_file.read_text(encoding="utf-8"))
            logger.info(f"Loaded {len(self.documents)} documents from {self.state_file}")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load document store {self.state_file}: {e}")
            raise StorageError("The record store could not be loaded.") from e

    def _persist(self) -> None:
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = self.state_file.with_suffix(".tmp")
            tmp_file.write_text(
                json.dumps(self.documents, indent=2, default=str),
                encoding="utf-8",
            )
            tmp_file.replace(self.state_file)
        except OSError as e:
            logger.error(f"Failed to save document store {self.state_file}: {e}")
            raise StorageError("Progress could not be saved.") from e


class ObjectStorage(ABC):
    """Blob storage for uploaded recordings and generated audio."""

    @abstractmethod
    async def put(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        pass

    @abstractmethod
    async def get(self, path: str) -> bytes:
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    async def signed_url(self, path: str) -> str:
        """Return a URL that grants read access to the object."""
        pass


class LocalObjectStorage(ObjectStorage):
    """Object storage backed by a local directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._tokens: Dict[str, str] = {}

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.strip("/")).resolve()
        if self.root.resolve() not in target.parents:
            logger.error(f"Object path escapes storage root: {path}")
            raise StorageError("Invalid stored file location.")
        return target

    async def put(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to store object {path}: {e}")
            raise StorageError("The file could not be stored.") from e
        logger.debug(f"Stored {len(data)} bytes at {path} ({content_type})")

    async def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.exists():
            logger.error(f"Object not found: {path}")
            raise StorageError("Stored file not found.")
        return target.read_bytes()

    async def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    async def signed_url(self, path: str) -> str:
        target = self._resolve(path)
        token = self._tokens.setdefault(path, secrets.token_urlsafe(16))
        return f"{target.as_uri()}?token={token}"
