"""
MemoryManager - the learning memory of past filing decisions.

Owns the VectorIndex (similarity) and the MetadataStore (records, history,
folder stats). The two stores have no shared transaction: every mutation
writes metadata first and the vector snapshot second under one writer lock,
so concurrent callers cannot interleave snapshot rewrites. A crash between
the two writes leaves them divergent; check_consistency() reports that and
re-analyzing the workspace rebuilds both.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sortr.core.domain.errors import EmbeddingUnavailableError
from sortr.core.domain.note import FolderStats, NeighborMatch, NoteRecord, Statistics
from sortr.core.domain.sorting import SortHistoryEntry
from sortr.core.interfaces.ports import IEmbeddingProvider
from sortr.infrastructure.storage.metadata_store import MetadataStore
from sortr.infrastructure.storage.vector_index import VectorIndex

logger = logging.getLogger(__name__)


@dataclass
class ConsistencyReport:
    missing_vectors: List[str] = field(default_factory=list)
    missing_records: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.missing_vectors and not self.missing_records


class MemoryManager:
    def __init__(
        self,
        embedder: Optional[IEmbeddingProvider],
        data_dir: Optional[str] = None,
        vector_index: Optional[VectorIndex] = None,
        metadata: Optional[MetadataStore] = None,
    ):
        if data_dir is None and (vector_index is None or metadata is None):
            raise ValueError("data_dir is required unless both stores are supplied")
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)

        self.embedder = embedder
        if vector_index is None:
            vector_index = VectorIndex(os.path.join(data_dir, "vectors.json"))
        if metadata is None:
            metadata = MetadataStore(os.path.join(data_dir, "metadata.db"))
        self.vectors = vector_index
        self.metadata = metadata
        self._write_lock = threading.RLock()

    def initialize(self) -> ConsistencyReport:
        """Loads the vector snapshot and reports divergence between the stores."""
        with self._write_lock:
            self.vectors.restore()
        report = self.check_consistency()
        if not report.consistent:
            logger.warning(
                "Memory stores diverge: %d records without vectors, %d vectors without records. "
                "Re-analyze the workspace to rebuild.",
                len(report.missing_vectors), len(report.missing_records),
            )
        return report

    def _embed(self, content: str) -> List[float]:
        if self.embedder is None:
            raise EmbeddingUnavailableError("This memory was opened without an embedding provider")
        return self.embedder.embed(content)

    def check_consistency(self) -> ConsistencyReport:
        record_ids = set(self.metadata.note_ids())
        vector_ids = set(self.vectors.ids())
        return ConsistencyReport(
            missing_vectors=sorted(record_ids - vector_ids),
            missing_records=sorted(vector_ids - record_ids),
        )

    def add_note(
        self,
        file_path: str,
        content: str,
        folder_path: str,
        previous_path: Optional[str] = None,
        persist: bool = True,
    ) -> NoteRecord:
        """
        Embeds and records a filed note under its path.

        previous_path drops the entries of the same note at its old location.
        """
        embedding = self._embed(content)
        record = NoteRecord.from_content(file_path, folder_path, content)

        with self._write_lock:
            self.metadata.upsert_note(record, previous_id=previous_path)
            if previous_path and previous_path != file_path:
                self.vectors.remove(previous_path)
            self.vectors.add(
                record.key,
                embedding,
                {
                    "file_path": file_path,
                    "folder_path": folder_path,
                    "created_at": str(record.created_at),
                },
            )
            if persist:
                self.vectors.persist()
        return record

    def forget_note(self, file_path: str, persist: bool = True) -> None:
        with self._write_lock:
            self.metadata.remove_note(file_path)
            self.vectors.remove(file_path)
            if persist:
                self.vectors.persist()

    def save(self) -> None:
        with self._write_lock:
            self.vectors.persist()

    def find_similar_notes(self, content: str, top_k: int = 5) -> List[NeighborMatch]:
        embedding = self._embed(content)
        return self.find_similar_by_embedding(embedding, top_k)

    def find_similar_by_embedding(self, embedding: List[float], top_k: int = 5) -> List[NeighborMatch]:
        with self._write_lock:
            matches = self.vectors.query(embedding, top_k)
        previews = self.metadata.get_previews([m.id for m in matches])
        for match in matches:
            match.preview = previews.get(match.id, "")
        return matches

    def folder_structure(self) -> Dict[str, FolderStats]:
        return self.metadata.folder_structure()

    def record_sort(self, note_id: str, from_path: str, to_path: str, confidence: float) -> SortHistoryEntry:
        entry = SortHistoryEntry(
            note_id=note_id, from_path=from_path, to_path=to_path, confidence=confidence
        )
        with self._write_lock:
            self.metadata.append_history(entry)
        return entry

    def last_sort(self) -> Optional[SortHistoryEntry]:
        return self.metadata.last_history_entry()

    def recent_sorts(self, limit: int = 10) -> List[SortHistoryEntry]:
        return self.metadata.recent_history(limit)

    def discard_sort(self, entry: SortHistoryEntry) -> None:
        with self._write_lock:
            if entry.id is not None:
                self.metadata.delete_history_entry(entry.id)

    def stats(self, window_days: int = 30) -> Statistics:
        return self.metadata.aggregate_stats(window_days)

    def clear(self) -> None:
        """Removes all notes, history and vectors. Irreversible."""
        with self._write_lock:
            self.metadata.clear()
            self.vectors.clear()
            self.vectors.persist()
        logger.info("Memory cleared")
