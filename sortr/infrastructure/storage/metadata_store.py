import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from sortr.core.domain.note import FolderStats, NoteRecord, Statistics
from sortr.core.domain.sorting import SortHistoryEntry

SECONDS_PER_DAY = 24 * 60 * 60

SCHEMA = """
CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    file_path TEXT NOT NULL,
    folder_path TEXT NOT NULL,
    content_preview TEXT,
    created_at REAL,
    updated_at REAL,
    file_size INTEGER,
    word_count INTEGER
);

CREATE TABLE IF NOT EXISTS sort_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    note_id TEXT,
    from_path TEXT,
    to_path TEXT,
    confidence REAL,
    timestamp REAL
);

CREATE TABLE IF NOT EXISTS folder_stats (
    folder_path TEXT PRIMARY KEY,
    note_count INTEGER,
    last_updated REAL
);

CREATE INDEX IF NOT EXISTS idx_notes_folder ON notes(folder_path);
CREATE INDEX IF NOT EXISTS idx_history_timestamp ON sort_history(timestamp);
"""


class MetadataStore:
    """SQLite store for note records, sort history and folder statistics."""

    def __init__(self, db_path: str = "metadata.db"):
        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        directory = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(directory, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # --- notes -----------------------------------------------------------

    def upsert_note(self, note: NoteRecord, previous_id: Optional[str] = None) -> None:
        """
        Writes a note record, replacing any record with the same id.

        When previous_id names a different record (the note moved), that
        record is dropped and the folder it vacated is recounted as well.
        """
        with self._connect() as conn:
            affected = {note.folder_path}

            existing = conn.execute(
                "SELECT folder_path, created_at FROM notes WHERE id = ?", (note.key,)
            ).fetchone()
            created_at = note.created_at
            if existing:
                affected.add(existing["folder_path"])
                created_at = existing["created_at"]

            if previous_id and previous_id != note.key:
                old = conn.execute(
                    "SELECT folder_path, created_at FROM notes WHERE id = ?", (previous_id,)
                ).fetchone()
                if old:
                    affected.add(old["folder_path"])
                    created_at = old["created_at"]
                    conn.execute("DELETE FROM notes WHERE id = ?", (previous_id,))

            conn.execute("""
                INSERT INTO notes (id, file_path, folder_path, content_preview,
                                   created_at, updated_at, file_size, word_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    file_path=excluded.file_path,
                    folder_path=excluded.folder_path,
                    content_preview=excluded.content_preview,
                    updated_at=excluded.updated_at,
                    file_size=excluded.file_size,
                    word_count=excluded.word_count
            """, (
                note.key, note.path, note.folder_path, note.content_preview,
                created_at, note.updated_at, note.file_size, note.word_count,
            ))

            for folder in affected:
                self._refresh_folder_stats(conn, folder)

    def remove_note(self, note_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT folder_path FROM notes WHERE id = ?", (note_id,)).fetchone()
            if not row:
                return False
            conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            self._refresh_folder_stats(conn, row["folder_path"])
            return True

    def get_note(self, note_id: str) -> Optional[NoteRecord]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
        return self._row_to_note(row) if row else None

    def get_previews(self, note_ids: List[str]) -> Dict[str, str]:
        if not note_ids:
            return {}
        placeholders = ",".join("?" for _ in note_ids)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id, content_preview FROM notes WHERE id IN ({placeholders})", note_ids
            ).fetchall()
        return {row["id"]: row["content_preview"] or "" for row in rows}

    def note_ids(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id FROM notes").fetchall()
        return [row["id"] for row in rows]

    def _refresh_folder_stats(self, conn: sqlite3.Connection, folder_path: str) -> None:
        count = conn.execute(
            "SELECT COUNT(*) FROM notes WHERE folder_path = ?", (folder_path,)
        ).fetchone()[0]
        if count == 0:
            conn.execute("DELETE FROM folder_stats WHERE folder_path = ?", (folder_path,))
            return
        conn.execute("""
            INSERT OR REPLACE INTO folder_stats (folder_path, note_count, last_updated)
            VALUES (?, ?, ?)
        """, (folder_path, count, time.time()))

    def folder_structure(self) -> Dict[str, FolderStats]:
        """Note counts per folder as kept by upsert_note and remove_note, largest first."""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT folder_path, note_count, last_updated
                FROM folder_stats
                ORDER BY note_count DESC, folder_path ASC
            """).fetchall()
        return {
            row["folder_path"]: FolderStats(
                folder_path=row["folder_path"],
                note_count=row["note_count"],
                last_updated=row["last_updated"] or 0.0,
            )
            for row in rows
        }

    # --- history ---------------------------------------------------------

    def append_history(self, entry: SortHistoryEntry) -> int:
        with self._connect() as conn:
            cursor = conn.execute("""
                INSERT INTO sort_history (note_id, from_path, to_path, confidence, timestamp)
                VALUES (?, ?, ?, ?, ?)
            """, (entry.note_id, entry.from_path, entry.to_path, entry.confidence, entry.timestamp))
            entry.id = cursor.lastrowid
        return entry.id

    def last_history_entry(self) -> Optional[SortHistoryEntry]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM sort_history ORDER BY id DESC LIMIT 1").fetchone()
        return self._row_to_history(row) if row else None

    def recent_history(self, limit: int = 10) -> List[SortHistoryEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sort_history ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._row_to_history(row) for row in rows]

    def delete_history_entry(self, entry_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM sort_history WHERE id = ?", (entry_id,))
            return cursor.rowcount > 0

    # --- aggregates ------------------------------------------------------

    def aggregate_stats(self, window_days: int = 30, now: Optional[float] = None) -> Statistics:
        now = time.time() if now is None else now
        since = now - window_days * SECONDS_PER_DAY
        with self._connect() as conn:
            total_notes = conn.execute("SELECT COUNT(*) FROM notes").fetchone()[0]
            total_folders = conn.execute(
                "SELECT COUNT(DISTINCT folder_path) FROM notes"
            ).fetchone()[0]
            total_sorts = conn.execute("SELECT COUNT(*) FROM sort_history").fetchone()[0]
            avg = conn.execute(
                "SELECT AVG(confidence) FROM sort_history WHERE timestamp > ?", (since,)
            ).fetchone()[0]

        return Statistics(
            total_notes=total_notes,
            total_folders=total_folders,
            total_sorts=total_sorts,
            avg_confidence=float(avg) if avg is not None else 0.0,
            window_days=window_days,
        )

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM notes")
            conn.execute("DELETE FROM sort_history")
            conn.execute("DELETE FROM folder_stats")

    @staticmethod
    def _row_to_note(row: sqlite3.Row) -> NoteRecord:
        return NoteRecord(
            path=row["file_path"],
            folder_path=row["folder_path"],
            content_preview=row["content_preview"] or "",
            file_size=row["file_size"] or 0,
            word_count=row["word_count"] or 0,
            created_at=row["created_at"] or 0.0,
            updated_at=row["updated_at"] or 0.0,
        )

    @staticmethod
    def _row_to_history(row: sqlite3.Row) -> SortHistoryEntry:
        return SortHistoryEntry(
            id=row["id"],
            note_id=row["note_id"],
            from_path=row["from_path"],
            to_path=row["to_path"],
            confidence=row["confidence"],
            timestamp=row["timestamp"],
        )
