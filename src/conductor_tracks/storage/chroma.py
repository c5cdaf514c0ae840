"""Chroma-based persistence for archive events."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from .models import ArchiveEventRecord

ARCHIVE_EVENT_TYPE = "archive_track"


class ChromaUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used here."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    """Protocol for the minimal Chroma client API used here."""

    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


@dataclass(slots=True)
class ChromaEvent:
    """Represents a stored event in Chroma."""

    id: str
    event_type: str
    document: str
    metadata: dict[str, Any]
    timestamp: datetime


class ChromaStore:
    """Persist archive events in a ChromaDB collection."""

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = "conductor_archives",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._collection_name = collection_name
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._client: ClientProtocol | None = None
        self._collection: CollectionProtocol | None = None

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise ChromaUnavailableError(
                "chromadb package is not installed; install conductor-tracks with the chroma extra"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _ensure_collection(self) -> CollectionProtocol:
        if self._collection is None:
            client = self._client or self._client_factory()
            self._client = client
            self._collection = client.get_or_create_collection(self._collection_name)
        return self._collection

    def _convert_result(self, result: dict[str, list[Any]]) -> list[ChromaEvent]:
        events: list[ChromaEvent] = []
        ids = result.get("ids", [])
        documents = result.get("documents", [])
        metadatas = result.get("metadatas", [])
        for event_id, document, metadata in zip(ids, documents, metadatas):
            timestamp_raw = metadata.get("timestamp")
            timestamp = (
                datetime.fromisoformat(timestamp_raw)
                if isinstance(timestamp_raw, str)
                else self._clock()
            )
            events.append(
                ChromaEvent(
                    id=event_id,
                    event_type=metadata.get("event_type", ""),
                    document=document,
                    metadata=metadata,
                    timestamp=timestamp,
                )
            )
        events.sort(key=lambda event: event.timestamp)
        return events

    def record_event(
        self,
        *,
        event_type: str,
        body: Any,
        metadata: dict[str, Any] | None = None,
    ) -> ChromaEvent:
        collection = self._ensure_collection()
        event_id = f"{event_type}:{uuid.uuid4().hex}"
        timestamp = self._clock()

        document = body if isinstance(body, str) else json.dumps(body)
        record_metadata = {
            "event_type": event_type,
            "timestamp": timestamp.isoformat(),
        }
        if metadata:
            record_metadata.update(metadata)

        collection.add(
            documents=[document],
            metadatas=[record_metadata],
            ids=[event_id],
        )

        return ChromaEvent(
            id=event_id,
            event_type=event_type,
            document=document,
            metadata=record_metadata,
            timestamp=timestamp,
        )

    def search_events(
        self,
        *,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[ChromaEvent]:
        """Matching events, oldest first; ``limit`` keeps the most recent ones."""

        collection = self._ensure_collection()
        result = collection.get(where=filters)
        events = self._convert_result(result)
        return events[-limit:] if limit else events

    def record_archive(
        self,
        *,
        track_id: str,
        title: str,
        reason: str,
        archived_at: datetime,
        artifacts: Iterable[str],
    ) -> ChromaEvent:
        payload = {
            "track_id": track_id,
            "title": title,
            "reason": reason,
            "archived_at": archived_at.isoformat(),
            "artifacts": list(artifacts),
        }
        return self.record_event(
            event_type=ARCHIVE_EVENT_TYPE,
            body=payload,
            metadata={"track_id": track_id, "reason": reason},
        )

    def list_archives(self, track_id: str | None = None) -> list[ArchiveEventRecord]:
        filters: dict[str, Any] = {"event_type": ARCHIVE_EVENT_TYPE}
        if track_id:
            filters = {"$and": [filters, {"track_id": track_id}]}
        records: list[ArchiveEventRecord] = []
        for event in self.search_events(filters=filters):
            doc = json.loads(event.document)
            records.append(
                ArchiveEventRecord(
                    track_id=doc["track_id"],
                    title=doc.get("title", ""),
                    reason=doc.get("reason", ""),
                    archived_at=datetime.fromisoformat(doc["archived_at"]),
                    artifacts=list(doc.get("artifacts", [])),
                    recorded_at=event.timestamp,
                    metadata={
                        k: v
                        for k, v in doc.items()
                        if k not in {"track_id", "title", "reason", "archived_at", "artifacts"}
                    },
                )
            )
        return records


__all__ = ["ARCHIVE_EVENT_TYPE", "ChromaEvent", "ChromaStore", "ChromaUnavailableError"]
