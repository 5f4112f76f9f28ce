#!/usr/bin/env python3
"""
Sortr - file inbox notes into the right workspace folder.

Usage:
    # Learn the existing folder structure
    python main.py init --workspace ~/notes

    # Sort the inbox (asks before every move)
    python main.py sort

    # Sort without prompts, preview only
    python main.py sort --auto --dry-run

    # Watch the inbox and sort new notes as they arrive
    python main.py watch

    # Undo the last move, show statistics, wipe memory
    python main.py undo
    python main.py stats
    python main.py reset
"""

import argparse
import logging
import os
import sys

# Ensure the sortr package is importable when run from a checkout
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from sortr.config import SortrConfig
from sortr.core.domain.errors import EmbeddingUnavailableError, SortrError
from sortr.core.domain.sorting import SortOutcome
from sortr.core.services.memory_service import MemoryManager
from sortr.core.services.sort_service import create_sorter
from sortr.core.services.watch_service import IngestionScheduler


def confirm(message: str, default: bool = True) -> bool:
    hint = "Y/n" if default else "y/N"
    try:
        answer = input(f"   {message} ({hint}): ").strip().lower()
    except EOFError:
        return False
    if not answer:
        return default
    return answer in ("y", "yes")


def print_result(result) -> None:
    name = os.path.basename(result.source)
    if result.success:
        verb = "Would move" if result.outcome is SortOutcome.DRY_RUN else "Moved"
        print(f"📄 {name}")
        print(f"   → {result.suggestion.folder} (confidence: {result.confidence * 100:.0f}%)")
        if result.suggestion.reason:
            print(f"   💡 {result.suggestion.reason}")
        print(f"   ✓ {verb} to {result.destination}")
    else:
        print(f"✗ {name}: {result.error or result.outcome.value}")


def cmd_init(config: SortrConfig, args) -> int:
    sorter = create_sorter(config)
    result = sorter.analyzer.analyze(reanalyze=args.re_analyze)
    print("\n✨ Analysis complete!")
    print(f"  • Processed: {result.total_notes} notes")
    print(f"  • Folders: {len(result.folders)}")
    print(f"  • Skipped: {result.skipped} files")
    print(f"\nNext: add notes to {config.inbox_path} and run `python main.py sort`")
    return 0


def _require_memory(sorter) -> bool:
    if sorter.memory.stats().total_notes == 0:
        print("⚠️  No notes in memory. Run: python main.py init")
        return False
    return True


def cmd_sort(config: SortrConfig, args) -> int:
    sorter = create_sorter(config, confirm=confirm)
    if not _require_memory(sorter):
        return 1

    summary = sorter.sort_inbox(auto=args.auto, dry_run=args.dry_run, force=args.force)
    for result in summary.results:
        print_result(result)

    print("\n✨ Complete!")
    print(f"  • Sorted: {summary.sorted}")
    print(f"  • Skipped: {summary.skipped}")
    print(f"  • Failed: {summary.failed}")
    return 0


def cmd_move(config: SortrConfig, args) -> int:
    if not os.path.exists(args.file):
        print(f"✗ File not found: {args.file}")
        return 1
    if not config.is_valid_file(args.file):
        print(f"✗ Invalid file type. Supported: {', '.join(config.file_extensions)}")
        return 1

    sorter = create_sorter(config, confirm=confirm)
    result = sorter.sort_note(args.file, auto=args.auto, dry_run=args.dry_run, force=args.force)
    print_result(result)
    return 0 if result.success else 1


def cmd_watch(config: SortrConfig, args) -> int:
    sorter = create_sorter(config)
    if not _require_memory(sorter):
        return 1

    scheduler = IngestionScheduler(
        sorter,
        config.inbox_path,
        is_eligible=config.is_valid_file,
        settle_seconds=config.watch_settle_seconds,
        poll_seconds=config.watch_poll_seconds,
    )
    print(f"👀 Watching inbox: {config.inbox_path}")
    print("   Press Ctrl+C to stop\n")
    scheduler.run_forever()
    print("✓ Stopped")
    return 0


def cmd_undo(config: SortrConfig, args) -> int:
    sorter = create_sorter(config)
    result = sorter.undo_last_sort()
    if not result.success:
        print(f"✗ {result.error}")
        return 1
    print(f"✓ Undone: {os.path.basename(result.entry.to_path)}")
    print(f"   Moved back to: {os.path.dirname(result.entry.from_path)}")
    return 0


def _open_memory(config: SortrConfig) -> MemoryManager:
    # Statistics and reset never embed, so no model is loaded
    memory = MemoryManager(None, data_dir=config.data_path)
    memory.initialize()
    return memory


def cmd_stats(config: SortrConfig, args) -> int:
    memory = _open_memory(config)
    stats = memory.stats(config.stats_window_days)

    print("\n📊 Sortr Statistics")
    print("─" * 50)
    print(f"Total Notes:       {stats.total_notes}")
    print(f"Total Folders:     {stats.total_folders}")
    print(f"Total Sorts:       {stats.total_sorts}")
    print(f"Avg Confidence:    {stats.avg_confidence * 100:.0f}% ({stats.window_days}d)")

    folders = list(memory.folder_structure().values())[:10]
    if folders:
        print("\n📁 Top Folders:")
        for folder in folders:
            print(f"  • {folder.folder_path}: {folder.note_count} notes")

    recent = memory.recent_sorts(5)
    if recent:
        print("\n🕘 Recent Sorts:")
        for entry in recent:
            print(f"  • {os.path.basename(entry.to_path)} → {os.path.dirname(entry.to_path)} "
                  f"({entry.confidence * 100:.0f}%)")
    print()
    return 0


def cmd_reset(config: SortrConfig, args) -> int:
    if not args.yes and not confirm(
        "Are you sure you want to reset all memory? This cannot be undone.", default=False
    ):
        print("Operation cancelled.")
        return 0
    _open_memory(config).clear()
    print("✓ Memory cleared")
    print("Run `python main.py init` to re-analyze the workspace")
    return 0


def cmd_config(config: SortrConfig, args) -> int:
    print("\n⚙️  Configuration")
    print("─" * 50)
    print(f"Workspace:            {config.workspace_path}")
    print(f"Inbox:                {config.inbox_path}")
    print(f"LLM:                  {config.llm_provider} ({config.model})")
    print(f"Embedding model:      {config.embedding_model}")
    print(f"Confidence Threshold: {config.confidence_threshold * 100:.0f}%")
    print(f"File Extensions:      {', '.join(config.file_extensions)}")
    print(f"Excluded Folders:     {', '.join(config.exclude_folders)}")
    print(f"Data Directory:       {config.data_path}")
    print()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sort inbox notes into workspace folders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--workspace", "-w", type=str, help="Workspace root (default: SORTR_WORKSPACE or ~/notes)")
    parser.add_argument("--model", "-m", type=str, help="LLM model used for suggestions")
    parser.add_argument("--confidence", type=float, help="Confidence threshold between 0 and 1")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Analyze the workspace folder structure")
    init.add_argument("--re-analyze", action="store_true", help="Clear memory and analyze again")
    init.set_defaults(func=cmd_init)

    sort = sub.add_parser("sort", help="Sort notes from the inbox")
    sort.add_argument("--auto", action="store_true", help="Sort without confirmation")
    sort.add_argument("--dry-run", action="store_true", help="Preview without moving files")
    sort.add_argument("--force", action="store_true", help="With --auto, also move low-confidence notes")
    sort.set_defaults(func=cmd_sort)

    move = sub.add_parser("move", help="Sort a specific note file")
    move.add_argument("file", type=str)
    move.add_argument("--auto", action="store_true", help="Move without confirmation")
    move.add_argument("--dry-run", action="store_true", help="Preview without moving the file")
    move.add_argument("--force", action="store_true", help="With --auto, also move a low-confidence note")
    move.set_defaults(func=cmd_move)

    sub.add_parser("watch", help="Watch the inbox and sort new notes").set_defaults(func=cmd_watch)
    sub.add_parser("undo", help="Undo the last sort").set_defaults(func=cmd_undo)
    sub.add_parser("stats", help="Show sorting statistics").set_defaults(func=cmd_stats)

    reset = sub.add_parser("reset", help="Clear all memory and statistics")
    reset.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
    reset.set_defaults(func=cmd_reset)

    sub.add_parser("config", help="Show the current configuration").set_defaults(func=cmd_config)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = SortrConfig.from_env().update(
            workspace=args.workspace,
            model=args.model,
            confidence_threshold=args.confidence,
        )
        return args.func(config, args)
    except EmbeddingUnavailableError as e:
        print(f"✗ {e}")
        return 2
    except SortrError as e:
        print(f"✗ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
