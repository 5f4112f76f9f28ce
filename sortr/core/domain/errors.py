class SortrError(Exception):
    """Base class for all sortr errors."""


class ConfigError(SortrError):
    """Raised when a configuration value cannot be used."""


class EmbeddingUnavailableError(SortrError):
    """No embedding backend could be initialised. Fatal at startup."""


class EmbeddingError(SortrError):
    """A single embedding request failed."""


class DimensionMismatchError(SortrError):
    """
    An embedding does not match the dimensionality of the index.

    This means the embedding model changed underneath a persisted index and is
    treated as a configuration error, never as a per-note failure.
    """

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension {actual} does not match index dimension {expected}. "
            "Re-analyze the workspace after changing the embedding model."
        )


class SuggestionProviderError(SortrError):
    """The suggestion provider could not be reached or failed to answer."""


class NoteReadError(SortrError):
    """A note could not be read as text."""
