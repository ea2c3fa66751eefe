from __future__ import annotations
import json
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional


class DocumentCollection:
    """A named collection of JSON documents keyed by document id.

    When a persistence path is given every write is flushed to disk, and
    ``reload()`` picks up edits made to the file by other processes.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._documents: Dict[str, Dict[str, Any]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._documents = self._load_from_disk()

    def get(self, document_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                return None
            return _copy(document)

    def set(self, document_id: str, document: Dict[str, Any]) -> None:
        with self._lock:
            self._documents[document_id] = _copy(document)
            self._persist()

    def update(self, document_id: str, fields: Dict[str, Any]) -> None:
        """Overwrite top-level fields of an existing document."""
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                raise KeyError(
                    f"Document {document_id!r} not found in collection {self.name!r}."
                )
            document.update(_copy(fields))
            self._persist()

    def delete(self, document_id: str) -> None:
        with self._lock:
            if self._documents.pop(document_id, None) is not None:
                self._persist()

    def scan(self) -> list[tuple[str, Dict[str, Any]]]:
        """Return ``(document_id, document)`` copies sorted by id."""

        with self._lock:
            return [
                (document_id, _copy(document))
                for document_id, document in sorted(self._documents.items())
            ]

    def reload(self) -> None:
        if not self.persistence_path:
            return
        documents = self._load_from_disk()
        with self._lock:
            self._documents = documents

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(
            json.dumps(self._documents, indent=2, sort_keys=True)
        )

    def _load_from_disk(self) -> Dict[str, Dict[str, Any]]:
        if not self.persistence_path or not self.persistence_path.exists():
            return {}

        raw = self.persistence_path.read_text() or "{}"
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(
                f"Collection file {self.persistence_path} must contain a JSON object."
            )
        return {str(document_id): document for document_id, document in data.items()}


def _copy(document: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(json.dumps(document))
