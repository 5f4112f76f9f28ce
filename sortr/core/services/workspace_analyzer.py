import logging
import os
from typing import List, Tuple

from tqdm import tqdm

from sortr.config import SortrConfig
from sortr.core.domain.errors import EmbeddingError, NoteReadError
from sortr.core.domain.note import AnalysisResult
from sortr.core.interfaces.ports import INoteRepository
from sortr.core.services.memory_service import MemoryManager

logger = logging.getLogger(__name__)

NO_FOLDERS_SUMMARY = "No folders analyzed yet."


def is_within(path: str, directory: str) -> bool:
    path = os.path.abspath(path)
    directory = os.path.abspath(directory)
    return path == directory or path.startswith(directory.rstrip(os.sep) + os.sep)


class WorkspaceAnalyzer:
    """Learns the existing folder structure of the workspace."""

    def __init__(self, config: SortrConfig, memory: MemoryManager, repo: INoteRepository):
        self.config = config
        self.memory = memory
        self.repo = repo

    def discover_notes(self) -> List[Tuple[str, str]]:
        """
        Returns (file_path, folder_path) for every candidate note.

        Skips excluded folder names anywhere below the workspace and the
        whole inbox subtree. folder_path is relative to the workspace, "."
        for notes at its root.
        """
        workspace = self.config.workspace_path
        inbox = self.config.inbox_path
        notes = []

        for root, dirs, files in os.walk(workspace):
            kept = []
            for name in sorted(dirs):
                full = os.path.join(root, name)
                if name in self.config.exclude_folders or is_within(full, inbox):
                    continue
                kept.append(name)
            dirs[:] = kept

            if is_within(root, inbox):
                continue
            folder_path = os.path.relpath(root, workspace)
            if self.config.is_excluded_folder(folder_path):
                continue
            for name in sorted(files):
                full = os.path.join(root, name)
                if self.config.is_valid_file(full):
                    notes.append((full, folder_path))
        return notes

    def is_filed_location(self, path: str) -> bool:
        """True when path lies in the workspace, outside the inbox and excluded folders."""
        workspace = self.config.workspace_path
        if not is_within(path, workspace) or is_within(path, self.config.inbox_path):
            return False
        return not self.config.is_excluded_folder(os.path.relpath(os.path.dirname(path), workspace))

    def folder_for(self, path: str) -> str:
        return os.path.relpath(os.path.dirname(os.path.abspath(path)), self.config.workspace_path)

    def analyze(self, reanalyze: bool = False, show_progress: bool = True) -> AnalysisResult:
        if reanalyze:
            logger.info("Clearing existing memory before re-analysis")
            self.memory.clear()

        logger.info("Analyzing workspace: %s", self.config.workspace_path)
        notes = self.discover_notes()
        if not notes:
            logger.warning("No notes found in workspace")
            return AnalysisResult(total_notes=0, folders={}, skipped=0)

        processed = 0
        skipped = 0
        for file_path, folder_path in tqdm(notes, desc="Analyzing notes", disable=not show_progress):
            try:
                content = self.repo.read_text(file_path)
            except NoteReadError as e:
                logger.debug("Skipped unreadable %s: %s", file_path, e)
                skipped += 1
                continue

            if len(content.strip()) < self.config.min_content_length:
                logger.debug("Skipped (too short): %s", file_path)
                skipped += 1
                continue

            try:
                self.memory.add_note(file_path, content, folder_path, persist=False)
            except EmbeddingError as e:
                logger.warning("Error embedding %s: %s", file_path, e)
                skipped += 1
                continue
            processed += 1

        self.memory.save()
        folders = self.memory.folder_structure()
        logger.info(
            "Analysis complete: %d notes in %d folders, %d skipped",
            processed, len(folders), skipped,
        )
        return AnalysisResult(total_notes=processed, folders=folders, skipped=skipped)

    def get_folder_summary(self) -> str:
        folders = self.memory.folder_structure()
        if not folders:
            return NO_FOLDERS_SUMMARY

        lines = ["Current folder structure:"]
        ordered = sorted(folders.values(), key=lambda s: s.note_count, reverse=True)
        for stats in ordered:
            lines.append(f"  • {stats.folder_path}: {stats.note_count} notes")
        return "\n".join(lines)
