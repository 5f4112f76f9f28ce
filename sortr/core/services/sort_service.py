"""
NoteSorter - classifies notes and files them into workspace folders.

Per note: read -> length check -> neighbor search -> suggestion chain
(LLM first, neighbor plurality when the provider fails) -> confidence policy
-> dry run or move -> history, record and vector bookkeeping.
"""

import logging
import os
from typing import Callable, Optional

from sortr.config import SortrConfig
from sortr.core.domain.errors import EmbeddingError, EmbeddingUnavailableError, NoteReadError
from sortr.core.domain.sorting import (
    InboxSummary,
    SortOutcome,
    SortResult,
    SortSuggestion,
    UndoResult,
)
from sortr.core.interfaces.ports import IEmbeddingProvider, ILLMProvider, INoteRepository
from sortr.core.services.memory_service import MemoryManager
from sortr.core.services.suggestion_service import (
    LLMSuggestionStrategy,
    NeighborPluralityStrategy,
    SuggestionChain,
    SuggestionContext,
)
from sortr.core.services.workspace_analyzer import WorkspaceAnalyzer, is_within

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]


class NoteSorter:
    def __init__(
        self,
        config: SortrConfig,
        memory: MemoryManager,
        analyzer: WorkspaceAnalyzer,
        repo: INoteRepository,
        suggestions: SuggestionChain,
        confirm: Optional[ConfirmFn] = None,
    ):
        self.config = config
        self.memory = memory
        self.analyzer = analyzer
        self.repo = repo
        self.suggestions = suggestions
        # Interactive yes/no prompt; without one every question is answered "no".
        self.confirm = confirm

    def _ask(self, message: str) -> bool:
        if self.confirm is None:
            logger.info("No confirmation available for '%s', treating as cancelled", message)
            return False
        return bool(self.confirm(message))

    def _resolve_folder(self, folder: str) -> Optional[str]:
        """Absolute destination folder, or None if it escapes the workspace or lies in the inbox."""
        workspace = self.config.workspace_path
        destination = os.path.abspath(os.path.join(workspace, folder))
        if not is_within(destination, workspace) or is_within(destination, self.config.inbox_path):
            return None
        return destination

    def sort_note(
        self,
        note_path: str,
        auto: bool = False,
        dry_run: bool = False,
        force: bool = False,
    ) -> SortResult:
        """
        Classifies one note and, unless dry_run, moves it.

        auto skips every prompt. Below the confidence threshold an automatic
        sort only proceeds when force is set; an interactive one asks first.
        """
        note_path = os.path.realpath(note_path)
        filename = os.path.basename(note_path)

        try:
            content = self.repo.read_text(note_path)
        except NoteReadError as e:
            logger.error("Error reading %s: %s", filename, e)
            return SortResult(SortOutcome.READ_ERROR, note_path, error=str(e))

        if len(content.strip()) < self.config.min_content_length:
            logger.warning("Note too short to sort: %s", filename)
            return SortResult(SortOutcome.TOO_SHORT, note_path, error="Content too short")

        try:
            # One extra so a note that is already indexed can drop itself.
            neighbors = self.memory.find_similar_notes(content, self.config.top_k_similar + 1)
        except EmbeddingError as e:
            logger.error("Could not embed %s: %s", filename, e)
            return SortResult(SortOutcome.EMBEDDING_FAILED, note_path, error=str(e))
        neighbors = [n for n in neighbors if n.id != note_path][: self.config.top_k_similar]

        context = SuggestionContext(
            content=content,
            filename=filename,
            folder_structure=self.analyzer.get_folder_summary(),
            neighbors=neighbors,
        )
        suggestion, strategy = self.suggestions.suggest(context)

        if suggestion.is_empty:
            logger.error("Could not determine folder for: %s", filename)
            return SortResult(
                SortOutcome.NO_SUGGESTION, note_path, suggestion=suggestion,
                strategy=strategy, error="No suggestion",
            )

        destination_folder = self._resolve_folder(suggestion.folder)
        if destination_folder is None:
            logger.error("Suggested folder %r is outside the workspace", suggestion.folder)
            return SortResult(
                SortOutcome.NO_SUGGESTION, note_path, suggestion=suggestion,
                strategy=strategy, error=f"Invalid folder: {suggestion.folder}",
            )

        def result(outcome: SortOutcome, destination: Optional[str] = None, error: Optional[str] = None):
            return SortResult(outcome, note_path, destination, suggestion, strategy, error)

        if suggestion.confidence < self.config.confidence_threshold:
            logger.warning(
                "Low confidence (%.0f%%) for %s: suggested %s (%s)",
                suggestion.confidence * 100, filename, suggestion.folder, suggestion.reason,
            )
            if auto:
                if not force:
                    return result(SortOutcome.BELOW_THRESHOLD, error="Below confidence threshold")
            elif not self._ask("Proceed anyway?"):
                return result(SortOutcome.CANCELLED, error="User cancelled")

        logger.info(
            "%s -> %s (confidence: %.0f%%, via %s) %s",
            filename, suggestion.folder, suggestion.confidence * 100, strategy, suggestion.reason,
        )

        if dry_run:
            return result(SortOutcome.DRY_RUN, os.path.join(destination_folder, filename))

        if not auto and not self._ask("Move note?"):
            return result(SortOutcome.CANCELLED, error="User cancelled")

        try:
            destination = self.repo.move_note(note_path, destination_folder)
        except OSError as e:
            logger.error("Error moving %s: %s", filename, e)
            return result(SortOutcome.MOVE_FAILED, error=str(e))

        self._record_move(note_path, destination, destination_folder, content, suggestion)
        return result(SortOutcome.MOVED, destination)

    def _record_move(
        self,
        source: str,
        destination: str,
        destination_folder: str,
        content: str,
        suggestion: SortSuggestion,
    ) -> None:
        self.memory.record_sort(destination, source, destination, suggestion.confidence)
        folder_path = os.path.relpath(destination_folder, self.config.workspace_path)
        try:
            self.memory.add_note(destination, content, folder_path, previous_path=source)
        except EmbeddingError as e:
            # The file is already moved; memory catches up on the next analysis.
            logger.warning("Could not update memory for %s: %s", destination, e)

    def sort_inbox(self, auto: bool = False, dry_run: bool = False, force: bool = False) -> InboxSummary:
        inbox = self.config.inbox_path
        summary = InboxSummary()

        if not os.path.isdir(inbox):
            logger.warning("Inbox not found, creating %s", inbox)
            os.makedirs(inbox, exist_ok=True)
            return summary

        notes = [p for p in self.repo.list_directory(inbox) if self.config.is_valid_file(p)]
        if not notes:
            logger.info("Inbox is empty")
            return summary

        logger.info("Sorting %d note(s) from inbox", len(notes))
        for note_path in notes:
            result = self.sort_note(note_path, auto=auto, dry_run=dry_run, force=force)
            summary.tally(result)
            summary.results.append(result)

        logger.info(
            "Inbox complete: %d sorted, %d skipped, %d failed",
            summary.sorted, summary.skipped, summary.failed,
        )
        return summary

    def undo_last_sort(self) -> UndoResult:
        """
        Moves the most recently sorted note back and reverses its bookkeeping.

        The history entry is removed so the next undo reaches the sort before
        it. The destination record and vector are dropped; a source inside a
        filed workspace folder is indexed again.
        """
        entry = self.memory.last_sort()
        if entry is None:
            logger.warning("No recent sorts to undo")
            return UndoResult(False, error="No recent sorts to undo")

        if not self.repo.exists(entry.to_path):
            logger.error("File not found: %s", entry.to_path)
            return UndoResult(False, entry, f"File not found: {entry.to_path}")

        if self.repo.exists(entry.from_path):
            logger.error("Original location is occupied: %s", entry.from_path)
            return UndoResult(False, entry, f"Original location is occupied: {entry.from_path}")

        try:
            self.repo.restore_note(entry.to_path, entry.from_path)
        except OSError as e:
            logger.error("Error undoing sort: %s", e)
            return UndoResult(False, entry, str(e))

        self.memory.discard_sort(entry)
        self.memory.forget_note(entry.to_path)
        if self.analyzer.is_filed_location(entry.from_path):
            try:
                content = self.repo.read_text(entry.from_path)
                self.memory.add_note(entry.from_path, content, self.analyzer.folder_for(entry.from_path))
            except (NoteReadError, EmbeddingError) as e:
                logger.warning("Could not re-index %s: %s", entry.from_path, e)

        logger.info("Undone: %s moved back to %s", os.path.basename(entry.to_path), entry.from_path)
        return UndoResult(True, entry)


def build_embedder(config: SortrConfig) -> IEmbeddingProvider:
    """
    sentence-transformers first, Ollama embeddings second.

    Raises EmbeddingUnavailableError when neither backend can be used.
    """
    from sortr.infrastructure.embedding.cache import CachedEmbeddingProvider, EmbeddingCache
    from sortr.infrastructure.embedding.local_embedder import LocalEmbeddingProvider
    from sortr.infrastructure.embedding.ollama_embedder import OllamaEmbeddingProvider

    try:
        embedder = LocalEmbeddingProvider(model_name=config.embedding_model)
    except EmbeddingUnavailableError as e:
        logger.warning("%s; falling back to Ollama embeddings", e)
        try:
            embedder = OllamaEmbeddingProvider(base_url=config.ollama_base_url)
        except EmbeddingUnavailableError:
            raise EmbeddingUnavailableError(
                "Neither sentence-transformers nor Ollama available for embeddings"
            )
    return CachedEmbeddingProvider(embedder, EmbeddingCache(config.embedding_cache_size))


def build_llm(config: SortrConfig) -> ILLMProvider:
    if config.llm_provider == "gemini":
        from sortr.infrastructure.llm.gemini_provider import GeminiProvider
        return GeminiProvider(model_name=config.model)

    from sortr.infrastructure.llm.ollama_provider import OllamaProvider
    return OllamaProvider(model_name=config.model, base_url=config.ollama_base_url)


def create_sorter(config: SortrConfig, confirm: Optional[ConfirmFn] = None) -> NoteSorter:
    """Factory function to create a NoteSorter with configured providers."""
    from sortr.infrastructure.storage.fs_repo import MarkdownFileRepository

    memory = MemoryManager(build_embedder(config), data_dir=config.data_path)
    memory.initialize()
    repo = MarkdownFileRepository()
    analyzer = WorkspaceAnalyzer(config, memory, repo)
    suggestions = SuggestionChain([LLMSuggestionStrategy(build_llm(config)), NeighborPluralityStrategy()])
    return NoteSorter(config, memory, analyzer, repo, suggestions, confirm=confirm)
