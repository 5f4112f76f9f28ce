"""
In-memory vector index with whole-snapshot persistence.

Search is brute force: every query scores all entries by cosine similarity.
The snapshot is one JSON file rewritten on every save through a temporary
file and os.replace, so a crash mid-write leaves the previous snapshot intact.
"""

import json
import logging
import os
import tempfile
from typing import Dict, List, Optional, Sequence

import numpy as np

from sortr.core.domain.errors import DimensionMismatchError
from sortr.core.domain.note import NeighborMatch, VectorEntry

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), defined as 0.0 when either vector has zero norm.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(len(va), len(vb))
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


class VectorIndex:
    def __init__(self, store_path: Optional[str] = None):
        self.store_path = store_path
        # dict preserves insertion order, which breaks similarity ties
        self._entries: Dict[str, VectorEntry] = {}
        self.dimension: Optional[int] = None

    def _check_dimension(self, embedding: Sequence[float]) -> None:
        if self.dimension is not None and len(embedding) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(embedding))

    def add(self, id: str, embedding: Sequence[float], metadata: Optional[Dict[str, str]] = None) -> None:
        """Inserts an entry, replacing any existing entry with the same id."""
        if len(embedding) == 0:
            raise ValueError("Cannot index an empty embedding")
        self._check_dimension(embedding)
        if self.dimension is None:
            self.dimension = len(embedding)

        # A replaced entry moves to the end, like a fresh insert.
        self._entries.pop(id, None)
        self._entries[id] = VectorEntry(
            id=id,
            embedding=[float(x) for x in embedding],
            metadata=dict(metadata or {}),
        )

    def remove(self, id: str) -> bool:
        removed = self._entries.pop(id, None) is not None
        if not self._entries:
            self.dimension = None
        return removed

    def get(self, id: str) -> Optional[VectorEntry]:
        return self._entries.get(id)

    def ids(self) -> List[str]:
        return list(self._entries)

    def query(self, embedding: Sequence[float], top_k: int = 5) -> List[NeighborMatch]:
        """Returns the top_k entries by descending cosine similarity."""
        if not self._entries or top_k <= 0:
            return []
        self._check_dimension(embedding)

        entries = list(self._entries.values())
        matrix = np.asarray([e.embedding for e in entries], dtype=np.float64)
        query = np.asarray(embedding, dtype=np.float64)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        similarities = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)

        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-similarities, kind="stable")[:top_k]

        return [
            NeighborMatch(
                id=entries[i].id,
                file_path=entries[i].file_path,
                folder_path=entries[i].folder_path,
                similarity=float(similarities[i]),
            )
            for i in order
        ]

    def clear(self) -> None:
        self._entries.clear()
        self.dimension = None

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def persist(self) -> None:
        if not self.store_path:
            return

        payload = {
            "version": SNAPSHOT_VERSION,
            "dimension": self.dimension,
            "entries": [e.to_dict() for e in self._entries.values()],
        }
        directory = os.path.dirname(os.path.abspath(self.store_path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".vectors-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.store_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def restore(self) -> None:
        """
        Loads the snapshot, replacing the current entries.

        An unreadable snapshot is moved aside to <path>.corrupt and the index
        starts empty; the workspace has to be re-analyzed to rebuild it.
        """
        self.clear()
        if not self.store_path or not os.path.exists(self.store_path):
            return

        try:
            with open(self.store_path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            raw_entries = payload["entries"] if isinstance(payload, dict) else payload
            entries = [VectorEntry.from_dict(item) for item in raw_entries]
        except (OSError, ValueError, KeyError, TypeError) as e:
            corrupt_path = self.store_path + ".corrupt"
            logger.error("Vector snapshot %s is unreadable (%s); moved to %s", self.store_path, e, corrupt_path)
            os.replace(self.store_path, corrupt_path)
            return

        for entry in entries:
            self.add(entry.id, entry.embedding, entry.metadata)
        logger.debug("Restored %d vectors from %s", len(self._entries), self.store_path)
