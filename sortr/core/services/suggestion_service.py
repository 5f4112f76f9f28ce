"""
Prioritized suggestion strategies.

Each strategy returns a StrategyResult holding either a suggestion or the
reason it failed. SuggestionChain tries them in order and reports which one
produced the final suggestion. A strategy that answers with an empty
suggestion has still answered; only failures fall through to the next one.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sortr.core.domain.errors import SuggestionProviderError
from sortr.core.domain.note import NeighborMatch
from sortr.core.domain.sorting import SortSuggestion
from sortr.core.interfaces.ports import ILLMProvider
from sortr.core.services.sort_prompts import build_sort_prompt, parse_sort_response

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5
FALLBACK_REASON = "Fallback: based on similar notes"


@dataclass
class SuggestionContext:
    content: str
    filename: str
    folder_structure: str
    neighbors: List[NeighborMatch] = field(default_factory=list)


@dataclass
class StrategyResult:
    suggestion: Optional[SortSuggestion] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.suggestion is not None

    @classmethod
    def failure(cls, error: str) -> "StrategyResult":
        return cls(suggestion=None, error=error)


class SuggestionStrategy(ABC):
    name = "strategy"

    @abstractmethod
    def suggest(self, context: SuggestionContext) -> StrategyResult:
        pass


class LLMSuggestionStrategy(SuggestionStrategy):
    name = "llm"

    def __init__(self, llm: ILLMProvider):
        self.llm = llm

    def suggest(self, context: SuggestionContext) -> StrategyResult:
        prompt = build_sort_prompt(
            context.content, context.neighbors, context.folder_structure, context.filename
        )
        try:
            response = self.llm.generate(prompt)
        except SuggestionProviderError as e:
            return StrategyResult.failure(str(e))
        return StrategyResult(parse_sort_response(response))


def plurality_folder(neighbors: List[NeighborMatch]) -> str:
    """Most common folder among neighbors; ties go to the best-ranked one."""
    counts: Dict[str, int] = {}
    for match in neighbors:
        counts[match.folder_path] = counts.get(match.folder_path, 0) + 1
    best, best_count = "", 0
    for folder, count in counts.items():
        if count > best_count:
            best, best_count = folder, count
    return best


class NeighborPluralityStrategy(SuggestionStrategy):
    name = "neighbors"

    def suggest(self, context: SuggestionContext) -> StrategyResult:
        if not context.neighbors:
            return StrategyResult(SortSuggestion.empty())
        return StrategyResult(
            SortSuggestion(
                folder=plurality_folder(context.neighbors),
                confidence=FALLBACK_CONFIDENCE,
                reason=FALLBACK_REASON,
            )
        )


class SuggestionChain:
    def __init__(self, strategies: List[SuggestionStrategy]):
        self.strategies = list(strategies)

    def suggest(self, context: SuggestionContext) -> Tuple[SortSuggestion, Optional[str]]:
        for strategy in self.strategies:
            result = strategy.suggest(context)
            if result.ok:
                return result.suggestion, strategy.name
            logger.warning("Suggestion strategy '%s' failed: %s", strategy.name, result.error)
        return SortSuggestion.empty(), None
