"""
Configuration for sortr.

Values come from the environment (optionally a .env file loaded with
python-dotenv). Every field has a default so an empty environment works.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from sortr.core.domain.errors import ConfigError

DEFAULT_EXTENSIONS = [".md", ".txt", ".org"]
DEFAULT_EXCLUDES = [".git", ".obsidian", "archive", ".trash"]


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@dataclass
class SortrConfig:
    workspace: str = "~/notes"
    inbox: str = "inbox"
    data_dir: str = "~/.sortr"
    llm_provider: str = "ollama"
    model: str = "llama3.2:3b"
    ollama_base_url: str = "http://localhost:11434"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    confidence_threshold: float = 0.7
    top_k_similar: int = 5
    min_content_length: int = 10
    file_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    exclude_folders: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    embedding_cache_size: int = 512
    watch_settle_seconds: float = 0.5
    watch_poll_seconds: float = 0.1
    stats_window_days: int = 30

    def __post_init__(self):
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigError(
                f"confidence_threshold must be within [0, 1], got {self.confidence_threshold}"
            )
        if self.top_k_similar < 1:
            raise ConfigError(f"top_k_similar must be positive, got {self.top_k_similar}")
        if self.embedding_cache_size < 0:
            raise ConfigError("embedding_cache_size cannot be negative")
        if self.watch_poll_seconds <= 0:
            raise ConfigError(f"watch_poll_seconds must be positive, got {self.watch_poll_seconds}")
        if self.stats_window_days < 1:
            raise ConfigError(f"stats_window_days must be positive, got {self.stats_window_days}")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "SortrConfig":
        """Builds a config from SORTR_* and provider environment variables."""
        load_dotenv(env_file)
        defaults = cls()

        extensions = os.getenv("SORTR_FILE_EXTENSIONS")
        excludes = os.getenv("SORTR_EXCLUDE_FOLDERS")
        provider = os.getenv("LLM_PROVIDER", defaults.llm_provider).lower()
        if provider == "gemini":
            model = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        else:
            model = os.getenv("OLLAMA_MODEL", defaults.model)

        return cls(
            workspace=os.getenv("SORTR_WORKSPACE", defaults.workspace),
            inbox=os.getenv("SORTR_INBOX", defaults.inbox),
            data_dir=os.getenv("SORTR_DATA_DIR", defaults.data_dir),
            llm_provider=provider,
            model=model,
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", defaults.ollama_base_url),
            embedding_model=os.getenv("EMBEDDING_MODEL", defaults.embedding_model),
            confidence_threshold=_env_float(
                "SORTR_CONFIDENCE_THRESHOLD", defaults.confidence_threshold
            ),
            top_k_similar=_env_int("SORTR_TOP_K", defaults.top_k_similar),
            min_content_length=_env_int("SORTR_MIN_CONTENT_LENGTH", defaults.min_content_length),
            file_extensions=_split_list(extensions) if extensions else defaults.file_extensions,
            exclude_folders=_split_list(excludes) if excludes else defaults.exclude_folders,
            embedding_cache_size=_env_int("SORTR_EMBEDDING_CACHE_SIZE", defaults.embedding_cache_size),
            watch_settle_seconds=_env_float("SORTR_WATCH_SETTLE", defaults.watch_settle_seconds),
            watch_poll_seconds=_env_float("SORTR_WATCH_POLL", defaults.watch_poll_seconds),
            stats_window_days=_env_int("SORTR_STATS_WINDOW_DAYS", defaults.stats_window_days),
        )

    def update(self, **overrides) -> "SortrConfig":
        """Returns a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    @property
    def workspace_path(self) -> str:
        return str(Path(self.workspace).expanduser().resolve())

    @property
    def inbox_path(self) -> str:
        inbox = Path(self.inbox).expanduser()
        if inbox.is_absolute():
            return str(inbox.resolve())
        return str(Path(self.workspace_path, inbox).resolve())

    @property
    def data_path(self) -> str:
        return str(Path(self.data_dir).expanduser().resolve())

    def is_excluded_folder(self, path: str) -> bool:
        parts = Path(path).parts
        return any(excluded in parts for excluded in self.exclude_folders)

    def is_valid_file(self, path: str) -> bool:
        return any(path.endswith(ext) for ext in self.file_extensions)
