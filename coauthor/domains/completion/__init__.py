from coauthor.domains.completion.entities import (
    AcceptedSuggestion, CancellationToken, CompletionState, ContentClass
)
from coauthor.domains.completion.heuristics import apply_suggestion, classify_content, find_stop
from coauthor.domains.completion.schemas import CompletionRequest

__all__ = [
    "AcceptedSuggestion", "CancellationToken", "CompletionState", "ContentClass",
    "apply_suggestion", "classify_content", "find_stop", "CompletionRequest",
]
