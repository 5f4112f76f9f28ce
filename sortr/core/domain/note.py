import time
from dataclasses import dataclass, field
from typing import Dict, List

PREVIEW_LENGTH = 200


@dataclass
class NoteRecord:
    """
    A note that has been filed in the workspace.

    The canonical file path is the identity of the record and doubles as the
    id of its vector entry.
    """
    path: str
    folder_path: str
    content_preview: str = ""
    file_size: int = 0
    word_count: int = 0
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def key(self) -> str:
        """Unique identifier for the note, its file path."""
        return self.path

    @classmethod
    def from_content(cls, path: str, folder_path: str, content: str) -> "NoteRecord":
        now = time.time()
        return cls(
            path=path,
            folder_path=folder_path,
            content_preview=content[:PREVIEW_LENGTH],
            file_size=len(content),
            word_count=len(content.split()),
            created_at=now,
            updated_at=now,
        )


@dataclass
class VectorEntry:
    id: str
    embedding: List[float]
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def folder_path(self) -> str:
        return self.metadata.get("folder_path", "")

    @property
    def file_path(self) -> str:
        return self.metadata.get("file_path", self.id)

    def to_dict(self) -> Dict:
        return {"id": self.id, "embedding": list(self.embedding), "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, data: Dict) -> "VectorEntry":
        return cls(
            id=str(data["id"]),
            embedding=[float(x) for x in data["embedding"]],
            metadata={str(k): str(v) for k, v in data.get("metadata", {}).items()},
        )


@dataclass
class NeighborMatch:
    """An existing note returned by a similarity query."""
    id: str
    file_path: str
    folder_path: str
    similarity: float
    preview: str = ""


@dataclass
class FolderStats:
    folder_path: str
    note_count: int
    last_updated: float = field(default_factory=time.time)


@dataclass
class Statistics:
    total_notes: int = 0
    total_folders: int = 0
    total_sorts: int = 0
    avg_confidence: float = 0.0
    window_days: int = 30


@dataclass
class AnalysisResult:
    total_notes: int
    folders: Dict[str, FolderStats]
    skipped: int
