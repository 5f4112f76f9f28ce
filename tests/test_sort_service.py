import os
import tempfile
import unittest
from unittest.mock import MagicMock

from sortr.config import SortrConfig
from sortr.core.domain.errors import DimensionMismatchError, SuggestionProviderError
from sortr.core.domain.sorting import SortOutcome
from sortr.core.services.memory_service import MemoryManager
from sortr.core.services.sort_service import NoteSorter
from sortr.core.services.suggestion_service import (
    LLMSuggestionStrategy,
    NeighborPluralityStrategy,
    SuggestionChain,
)
from sortr.core.services.workspace_analyzer import WorkspaceAnalyzer
from sortr.infrastructure.storage.fs_repo import MarkdownFileRepository
from tests.fakes import HashingEmbedder

MEETING = "Weekly meeting agenda with action items for the team sync"
IDEAS = "App idea: a habit tracker with streaks and reminders"


def reply(folder, confidence, reason="Looks related"):
    return f"FOLDER: {folder}\nCONFIDENCE: {confidence}\nREASON: {reason}"


class NoteSorterTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = os.path.realpath(self.tmp.name)
        self.workspace = os.path.join(root, "notes")
        self.inbox = os.path.join(self.workspace, "inbox")
        os.makedirs(self.inbox)

        self.config = SortrConfig(workspace=self.workspace, data_dir=os.path.join(root, "data"))
        self.embedder = HashingEmbedder()
        self.memory = MemoryManager(self.embedder, data_dir=self.config.data_path)
        self.memory.initialize()
        self.repo = MarkdownFileRepository()
        self.analyzer = WorkspaceAnalyzer(self.config, self.memory, self.repo)

        self.mock_llm = MagicMock()
        self.mock_confirm = MagicMock(return_value=True)
        chain = SuggestionChain([LLMSuggestionStrategy(self.mock_llm), NeighborPluralityStrategy()])
        self.sorter = NoteSorter(
            self.config, self.memory, self.analyzer, self.repo, chain, confirm=self.mock_confirm
        )

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, relative, content):
        path = os.path.join(self.workspace, relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def seed_workspace(self):
        self.write("work/meetings/standup.md", MEETING + " standup")
        self.write("work/meetings/retro.md", MEETING + " retro")
        self.write("ideas/app.md", IDEAS)
        self.analyzer.analyze(show_progress=False)


class TestSortNote(NoteSorterTestCase):
    def setUp(self):
        super().setUp()
        self.seed_workspace()

    def test_confident_auto_sort_moves_and_records(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 85)
        source = self.write("inbox/sync.md", MEETING)

        result = self.sorter.sort_note(source, auto=True)

        expected = os.path.join(self.workspace, "work", "meetings", "sync.md")
        self.assertEqual(result.outcome, SortOutcome.MOVED)
        self.assertEqual(result.destination, expected)
        self.assertEqual(result.strategy, "llm")
        self.assertTrue(os.path.exists(expected))
        self.assertFalse(os.path.exists(source))
        self.mock_confirm.assert_not_called()

        history = self.memory.recent_sorts()
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].from_path, source)
        self.assertEqual(history[0].to_path, expected)
        self.assertAlmostEqual(history[0].confidence, 0.85)

        record = self.memory.metadata.get_note(expected)
        self.assertEqual(record.folder_path, os.path.join("work", "meetings"))
        self.assertIsNotNone(self.memory.vectors.get(expected))
        self.assertEqual(self.memory.folder_structure()[os.path.join("work", "meetings")].note_count, 3)

    def test_prompt_includes_folders_and_neighbors(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 85)
        self.sorter.sort_note(self.write("inbox/sync.md", MEETING), auto=True)

        prompt = self.mock_llm.generate.call_args[0][0]
        self.assertIn("Current folder structure:", prompt)
        self.assertIn("Similar existing notes are stored in:", prompt)
        self.assertIn("NOTE FILENAME: sync.md", prompt)

    def test_interactive_low_confidence_declined(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 65)
        self.mock_confirm.return_value = False
        source = self.write("inbox/sync.md", MEETING)

        result = self.sorter.sort_note(source)

        self.assertEqual(result.outcome, SortOutcome.CANCELLED)
        self.assertTrue(os.path.exists(source))
        self.mock_confirm.assert_called_once_with("Proceed anyway?")
        self.assertEqual(self.memory.recent_sorts(), [])

    def test_interactive_low_confidence_accepted(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 65)
        source = self.write("inbox/sync.md", MEETING)

        result = self.sorter.sort_note(source)

        self.assertEqual(result.outcome, SortOutcome.MOVED)
        self.assertEqual(self.mock_confirm.call_count, 2)
        self.assertFalse(os.path.exists(source))

    def test_interactive_move_declined(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 90)
        self.mock_confirm.return_value = False
        source = self.write("inbox/sync.md", MEETING)

        result = self.sorter.sort_note(source)

        self.assertEqual(result.outcome, SortOutcome.CANCELLED)
        self.mock_confirm.assert_called_once_with("Move note?")
        self.assertTrue(os.path.exists(source))

    def test_auto_below_threshold_is_not_moved(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 40)
        source = self.write("inbox/sync.md", MEETING)

        result = self.sorter.sort_note(source, auto=True)

        self.assertEqual(result.outcome, SortOutcome.BELOW_THRESHOLD)
        self.assertFalse(result.success)
        self.assertTrue(os.path.exists(source))
        self.assertEqual(self.memory.recent_sorts(), [])

    def test_force_moves_below_threshold(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 40)
        source = self.write("inbox/sync.md", MEETING)

        result = self.sorter.sort_note(source, auto=True, force=True)

        self.assertEqual(result.outcome, SortOutcome.MOVED)
        self.assertAlmostEqual(self.memory.last_sort().confidence, 0.4)

    def test_dry_run_changes_nothing(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 85)
        source = self.write("inbox/sync.md", MEETING)
        ids_before = self.memory.metadata.note_ids()
        vectors_before = self.memory.vectors.ids()

        result = self.sorter.sort_note(source, auto=True, dry_run=True)

        self.assertEqual(result.outcome, SortOutcome.DRY_RUN)
        self.assertTrue(result.success)
        self.assertEqual(result.destination, os.path.join(self.workspace, "work", "meetings", "sync.md"))
        self.assertTrue(os.path.exists(source))
        self.assertFalse(os.path.exists(result.destination))
        self.assertEqual(self.memory.recent_sorts(), [])
        self.assertEqual(self.memory.metadata.note_ids(), ids_before)
        self.assertEqual(self.memory.vectors.ids(), vectors_before)

    def test_provider_failure_falls_back_to_neighbors(self):
        self.mock_llm.generate.side_effect = SuggestionProviderError("connection refused")
        source = self.write("inbox/sync.md", MEETING)

        result = self.sorter.sort_note(source, auto=True, force=True)

        self.assertEqual(result.outcome, SortOutcome.MOVED)
        self.assertEqual(result.strategy, "neighbors")
        self.assertEqual(result.suggestion.folder, os.path.join("work", "meetings"))
        self.assertEqual(result.confidence, 0.5)

    def test_too_short_never_reaches_provider(self):
        source = self.write("inbox/short.md", "hi there")

        result = self.sorter.sort_note(source, auto=True)

        self.assertEqual(result.outcome, SortOutcome.TOO_SHORT)
        self.mock_llm.generate.assert_not_called()
        self.assertTrue(os.path.exists(source))

    def test_missing_file_is_read_error(self):
        result = self.sorter.sort_note(os.path.join(self.inbox, "ghost.md"), auto=True)
        self.assertEqual(result.outcome, SortOutcome.READ_ERROR)
        self.mock_llm.generate.assert_not_called()

    def test_folder_outside_workspace_is_rejected(self):
        source = self.write("inbox/sync.md", MEETING)
        for folder in ("../outside", "inbox/later"):
            self.mock_llm.generate.return_value = reply(folder, 95)

            result = self.sorter.sort_note(source, auto=True)

            self.assertEqual(result.outcome, SortOutcome.NO_SUGGESTION)
            self.assertTrue(os.path.exists(source))

    def test_suggested_folder_is_created(self):
        self.mock_llm.generate.return_value = reply("personal/health", 90)
        source = self.write("inbox/run.md", "Morning run of five kilometers, felt great")

        result = self.sorter.sort_note(source, auto=True)

        self.assertEqual(result.outcome, SortOutcome.MOVED)
        self.assertTrue(os.path.isdir(os.path.join(self.workspace, "personal", "health")))

    def test_same_name_sorted_twice_gets_suffix(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 85)

        first = self.sorter.sort_note(self.write("inbox/note.md", MEETING + " one"), auto=True)
        second = self.sorter.sort_note(self.write("inbox/note.md", MEETING + " two"), auto=True)

        self.assertEqual(os.path.basename(first.destination), "note.md")
        self.assertEqual(os.path.basename(second.destination), "note_1.md")
        self.assertEqual(len(self.memory.recent_sorts()), 2)

    def test_already_indexed_note_is_not_its_own_neighbor(self):
        self.mock_llm.generate.return_value = reply("work/meetings", 85)
        path = os.path.join(self.workspace, "ideas", "app.md")

        self.sorter.sort_note(path, auto=True, dry_run=True)

        prompt = self.mock_llm.generate.call_args[0][0]
        self.assertNotIn("similarity: 100%", prompt)


    def test_changed_embedding_dimension_is_fatal(self):
        self.memory.embedder = HashingEmbedder(dimension=32)
        source = self.write("inbox/sync.md", MEETING)

        with self.assertRaises(DimensionMismatchError):
            self.sorter.sort_note(source, auto=True)
        with self.assertRaises(DimensionMismatchError):
            self.sorter.sort_inbox(auto=True)

        self.assertTrue(os.path.exists(source))
        self.mock_llm.generate.assert_not_called()


class TestSortWithoutMemory(NoteSorterTestCase):
    def test_no_neighbors_and_provider_failure(self):
        self.mock_llm.generate.side_effect = SuggestionProviderError("timeout")
        source = self.write("inbox/sync.md", MEETING)

        result = self.sorter.sort_note(source, auto=True, force=True)

        self.assertEqual(result.outcome, SortOutcome.NO_SUGGESTION)
        self.assertTrue(result.suggestion.is_empty)
        self.assertTrue(os.path.exists(source))


class TestSortInbox(NoteSorterTestCase):
    def test_batch_tally(self):
        self.seed_workspace()
        self.write("inbox/a_meeting.md", MEETING)
        self.write("inbox/b_short.md", "tiny")
        self.write("inbox/c_unsure.md", IDEAS + " maybe")
        self.write("inbox/d_image.png", "not a note at all")
        self.mock_llm.generate.side_effect = [reply("work/meetings", 85), reply("ideas", 40)]

        summary = self.sorter.sort_inbox(auto=True)

        self.assertEqual(summary.sorted, 1)
        self.assertEqual(summary.skipped, 1)
        self.assertEqual(summary.failed, 1)
        self.assertEqual(len(summary.results), 3)
        self.assertEqual(
            [r.outcome for r in summary.results],
            [SortOutcome.MOVED, SortOutcome.TOO_SHORT, SortOutcome.BELOW_THRESHOLD],
        )

    def test_missing_inbox_is_created(self):
        os.rmdir(self.inbox)

        summary = self.sorter.sort_inbox(auto=True)

        self.assertTrue(os.path.isdir(self.inbox))
        self.assertEqual(summary.results, [])


class TestUndo(NoteSorterTestCase):
    def setUp(self):
        super().setUp()
        self.seed_workspace()
        self.mock_llm.generate.return_value = reply("work/meetings", 85)

    def test_undo_without_history(self):
        listing = sorted(os.listdir(self.workspace))

        result = self.sorter.undo_last_sort()

        self.assertFalse(result.success)
        self.assertEqual(sorted(os.listdir(self.workspace)), listing)

    def test_undo_restores_note_and_memory(self):
        source = self.write("inbox/sync.md", MEETING)
        moved = self.sorter.sort_note(source, auto=True).destination

        result = self.sorter.undo_last_sort()

        self.assertTrue(result.success)
        self.assertTrue(os.path.exists(source))
        self.assertFalse(os.path.exists(moved))
        self.assertIsNone(self.memory.last_sort())
        self.assertIsNone(self.memory.metadata.get_note(moved))
        self.assertIsNone(self.memory.vectors.get(moved))
        self.assertIsNone(self.memory.metadata.get_note(source))

        self.assertFalse(self.sorter.undo_last_sort().success)

    def test_undo_walks_back_through_history(self):
        first = self.write("inbox/one.md", MEETING + " one")
        self.sorter.sort_note(first, auto=True)
        second = self.write("inbox/two.md", MEETING + " two")
        self.sorter.sort_note(second, auto=True)

        self.assertTrue(self.sorter.undo_last_sort().success)
        self.assertTrue(os.path.exists(second))
        self.assertTrue(self.sorter.undo_last_sort().success)
        self.assertTrue(os.path.exists(first))

    def test_undo_fails_when_destination_is_gone(self):
        source = self.write("inbox/sync.md", MEETING)
        moved = self.sorter.sort_note(source, auto=True).destination
        os.remove(moved)

        result = self.sorter.undo_last_sort()

        self.assertFalse(result.success)
        self.assertIn("not found", result.error)
        self.assertFalse(os.path.exists(source))
        self.assertIsNotNone(self.memory.last_sort())

    def test_undo_fails_when_origin_is_occupied(self):
        source = self.write("inbox/sync.md", MEETING)
        moved = self.sorter.sort_note(source, auto=True).destination
        self.write("inbox/sync.md", "a different note arrived meanwhile")

        result = self.sorter.undo_last_sort()

        self.assertFalse(result.success)
        self.assertTrue(os.path.exists(moved))

    def test_undo_reindexes_filed_origin(self):
        origin = os.path.join(self.workspace, "ideas", "app.md")
        moved = self.sorter.sort_note(origin, auto=True).destination
        self.assertIsNone(self.memory.metadata.get_note(origin))

        self.assertTrue(self.sorter.undo_last_sort().success)

        record = self.memory.metadata.get_note(origin)
        self.assertEqual(record.folder_path, "ideas")
        self.assertIsNotNone(self.memory.vectors.get(origin))
        self.assertIsNone(self.memory.vectors.get(moved))


if __name__ == "__main__":
    unittest.main()
