import os
import tempfile
import unittest
from unittest.mock import MagicMock

from sortr.config import SortrConfig
from sortr.core.domain.errors import EmbeddingError
from sortr.core.services.memory_service import MemoryManager
from sortr.core.services.workspace_analyzer import NO_FOLDERS_SUMMARY, WorkspaceAnalyzer, is_within
from sortr.infrastructure.storage.fs_repo import MarkdownFileRepository
from tests.fakes import HashingEmbedder


class TestWorkspaceAnalyzer(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = os.path.realpath(self.tmp.name)
        self.workspace = os.path.join(root, "notes")
        os.makedirs(self.workspace)

        self.config = SortrConfig(workspace=self.workspace, data_dir=os.path.join(root, "data"))
        self.embedder = HashingEmbedder()
        self.memory = MemoryManager(self.embedder, data_dir=self.config.data_path)
        self.analyzer = WorkspaceAnalyzer(self.config, self.memory, MarkdownFileRepository())

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, relative, content="A perfectly ordinary note about something"):
        path = os.path.join(self.workspace, relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def test_discovery_skips_inbox_and_excluded_folders(self):
        self.write("top.md")
        self.write("work/plan.md")
        self.write("work/.obsidian/workspace.md")
        self.write("archive/2019/old.md")
        self.write("inbox/new.md")
        self.write("inbox/deep/new.md")
        self.write("work/diagram.png")

        found = self.analyzer.discover_notes()

        self.assertEqual(
            [(os.path.relpath(p, self.workspace), folder) for p, folder in found],
            [("top.md", "."), (os.path.join("work", "plan.md"), "work")],
        )

    def test_analyze_counts_processed_and_skipped(self):
        self.write("work/a.md")
        self.write("work/b.md")
        self.write("ideas/c.txt")
        self.write("ideas/empty.md", "   ")

        result = self.analyzer.analyze(show_progress=False)

        self.assertEqual(result.total_notes, 3)
        self.assertEqual(result.skipped, 1)
        self.assertEqual(result.folders["work"].note_count, 2)
        self.assertEqual(result.folders["ideas"].note_count, 1)
        self.assertTrue(self.memory.check_consistency().consistent)

    def test_analysis_is_persisted(self):
        self.write("work/a.md")
        self.analyzer.analyze(show_progress=False)

        reopened = MemoryManager(self.embedder, data_dir=self.config.data_path)
        reopened.initialize()

        self.assertEqual(reopened.vectors.size(), 1)

    def test_reanalyze_clears_stale_notes(self):
        stale = self.write("work/a.md")
        self.analyzer.analyze(show_progress=False)
        os.remove(stale)
        self.write("ideas/b.md")

        result = self.analyzer.analyze(reanalyze=True, show_progress=False)

        self.assertEqual(result.total_notes, 1)
        self.assertEqual(list(result.folders), ["ideas"])
        self.assertEqual(self.memory.vectors.size(), 1)

    def test_embedding_failure_skips_note(self):
        self.write("work/a.md")
        self.write("work/b.md")
        embedder = MagicMock()
        embedder.embed.side_effect = [EmbeddingError("model crashed"), [1.0, 0.0]]
        self.memory.embedder = embedder

        result = self.analyzer.analyze(show_progress=False)

        self.assertEqual(result.total_notes, 1)
        self.assertEqual(result.skipped, 1)

    def test_empty_workspace(self):
        result = self.analyzer.analyze(show_progress=False)
        self.assertEqual(result.total_notes, 0)
        self.assertEqual(self.analyzer.get_folder_summary(), NO_FOLDERS_SUMMARY)

    def test_folder_summary_is_ordered_by_count(self):
        self.write("ideas/a.md")
        self.write("work/a.md")
        self.write("work/b.md")
        self.analyzer.analyze(show_progress=False)

        summary = self.analyzer.get_folder_summary()

        self.assertEqual(
            summary.splitlines(),
            ["Current folder structure:", "  • work: 2 notes", "  • ideas: 1 notes"],
        )

    def test_filed_location(self):
        self.assertTrue(self.analyzer.is_filed_location(os.path.join(self.workspace, "work", "a.md")))
        self.assertFalse(self.analyzer.is_filed_location(os.path.join(self.workspace, "inbox", "a.md")))
        self.assertFalse(self.analyzer.is_filed_location(os.path.join(self.workspace, "archive", "a.md")))
        self.assertFalse(self.analyzer.is_filed_location("/elsewhere/a.md"))
        self.assertEqual(self.analyzer.folder_for(os.path.join(self.workspace, "work", "x", "a.md")),
                         os.path.join("work", "x"))

    def test_is_within(self):
        self.assertTrue(is_within("/a/b/c", "/a/b"))
        self.assertTrue(is_within("/a/b", "/a/b/"))
        self.assertFalse(is_within("/a/bc", "/a/b"))


if __name__ == "__main__":
    unittest.main()
