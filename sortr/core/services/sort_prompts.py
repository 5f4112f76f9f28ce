"""
Prompt and reply format for folder suggestions.

The provider is asked for exactly three labeled lines:

    FOLDER: <folder_path>
    CONFIDENCE: <0-100>
    REASON: <one sentence explanation>

Parsing is lenient about order, case, whitespace and markdown emphasis. A
reply without a FOLDER line is an empty suggestion, not an error.
"""

import re
from typing import List

from sortr.core.domain.note import NeighborMatch
from sortr.core.domain.sorting import SortSuggestion

MAX_NEIGHBORS_IN_PROMPT = 3
MAX_CONTENT_IN_PROMPT = 1000

SORT_PROMPT = """You are a note organization assistant. Analyze this note and suggest the best folder.

FOLDER STRUCTURE:
{folder_structure}

{similar_context}

NOTE FILENAME: {filename}

NOTE CONTENT:
{content}

Based on the content, folder structure, and similar notes, suggest the EXACT folder path where this note should be stored. Consider:
- Content topic and theme
- Where similar notes are stored
- Existing folder structure
- Note filename

Respond in this exact format:
FOLDER: <folder_path>
CONFIDENCE: <0-100>
REASON: <one sentence explanation>

Example:
FOLDER: projects/work/meetings
CONFIDENCE: 85
REASON: Content discusses project planning and matches existing meeting notes"""

_LINE_PATTERN = re.compile(
    r"^[\s*#>-]*(FOLDER|CONFIDENCE|REASON)[\s*]*:[\s*]*(.*?)[\s*]*$",
    re.IGNORECASE,
)
_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")


def format_similar_notes(neighbors: List[NeighborMatch]) -> str:
    if not neighbors:
        return ""
    lines = ["Similar existing notes are stored in:"]
    for i, note in enumerate(neighbors[:MAX_NEIGHBORS_IN_PROMPT], 1):
        lines.append(f"{i}. {note.folder_path} (similarity: {note.similarity * 100:.0f}%)")
    return "\n".join(lines)


def build_sort_prompt(
    content: str,
    neighbors: List[NeighborMatch],
    folder_structure: str,
    filename: str,
) -> str:
    return SORT_PROMPT.format(
        folder_structure=folder_structure,
        similar_context=format_similar_notes(neighbors),
        filename=filename,
        content=content[:MAX_CONTENT_IN_PROMPT],
    )


def normalize_folder(folder: str) -> str:
    """Strips quoting and surrounding slashes from a suggested folder path."""
    folder = folder.strip().strip("`'\"").strip()
    folder = folder.replace("\\", "/").strip("/")
    return re.sub(r"/{2,}", "/", folder)


def parse_confidence(raw: str) -> float:
    """Reads a 0-100 score (an optional % is ignored) and scales it to [0, 1]."""
    match = _NUMBER_PATTERN.search(raw)
    if not match:
        return 0.0
    return min(1.0, max(0.0, float(match.group()) / 100.0))


def parse_sort_response(response: str) -> SortSuggestion:
    folder = ""
    confidence = 0.0
    reason = ""

    for line in response.strip().splitlines():
        match = _LINE_PATTERN.match(line)
        if not match:
            continue
        label, value = match.group(1).upper(), match.group(2)
        if label == "FOLDER" and not folder:
            folder = normalize_folder(value)
        elif label == "CONFIDENCE":
            confidence = parse_confidence(value)
        elif label == "REASON" and not reason:
            reason = value.strip()

    if not folder:
        return SortSuggestion.empty(reason)
    return SortSuggestion(folder=folder, confidence=confidence, reason=reason)
