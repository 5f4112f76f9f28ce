from abc import ABC, abstractmethod
from typing import List


class ILLMProvider(ABC):
    """Interface for the suggestion provider (a Large Language Model)."""

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """
        Generates text based on the provided prompt.

        Raises SuggestionProviderError when the request itself fails.
        """
        pass


class IEmbeddingProvider(ABC):
    """Interface for generating vector embeddings."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Generates a vector embedding for the given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Returns the dimension of the embeddings."""
        pass


class INoteRepository(ABC):
    """Interface for the file system holding the notes."""

    @abstractmethod
    def read_text(self, path: str) -> str:
        """Reads a note as text, raising NoteReadError if it cannot be decoded."""
        pass

    @abstractmethod
    def list_directory(self, directory: str) -> List[str]:
        """Lists the files directly inside a directory (non-recursive)."""
        pass

    @abstractmethod
    def move_note(self, path: str, destination_folder: str) -> str:
        """Moves a note into a folder without overwriting. Returns the new path."""
        pass

    @abstractmethod
    def restore_note(self, current_path: str, original_path: str) -> None:
        """Moves a note back to a path it previously occupied."""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass
