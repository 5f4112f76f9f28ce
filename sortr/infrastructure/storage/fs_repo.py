import logging
import os
import shutil
from typing import List, Sequence

from sortr.core.domain.errors import NoteReadError
from sortr.core.interfaces.ports import INoteRepository

logger = logging.getLogger(__name__)


class MarkdownFileRepository(INoteRepository):
    def __init__(self, encodings: Sequence[str] = ("utf-8", "latin-1")):
        self.encodings = tuple(encodings)

    def read_text(self, path: str) -> str:
        if not os.path.isfile(path):
            raise NoteReadError(f"Note not found at {path}")

        last_error = None
        for encoding in self.encodings:
            try:
                with open(path, "r", encoding=encoding) as f:
                    return f.read()
            except UnicodeDecodeError as e:
                last_error = e
            except OSError as e:
                raise NoteReadError(f"Cannot read {path}: {e}") from e
        raise NoteReadError(f"Cannot decode {path}: {last_error}")

    def list_directory(self, directory: str) -> List[str]:
        if not os.path.isdir(directory):
            return []
        return [
            os.path.join(directory, name)
            for name in sorted(os.listdir(directory))
            if os.path.isfile(os.path.join(directory, name))
        ]

    def move_note(self, path: str, destination_folder: str) -> str:
        os.makedirs(destination_folder, exist_ok=True)
        destination = self.unique_destination(destination_folder, os.path.basename(path))
        logger.debug("Moving %s -> %s", path, destination)
        shutil.move(path, destination)
        return destination

    def restore_note(self, current_path: str, original_path: str) -> None:
        parent = os.path.dirname(original_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        shutil.move(current_path, original_path)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    @staticmethod
    def unique_destination(folder: str, filename: str) -> str:
        """Appends _1, _2, ... to the stem until the name is unused in folder."""
        destination = os.path.join(folder, filename)
        if not os.path.exists(destination):
            return destination

        stem, ext = os.path.splitext(filename)
        counter = 1
        while os.path.exists(destination):
            destination = os.path.join(folder, f"{stem}_{counter}{ext}")
            counter += 1
        return destination
