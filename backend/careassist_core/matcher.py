from __future__ import annotations

from typing import Iterable

from .catalog import Catalog
from .models import Condition, MatchResult

MATCH_THRESHOLD = 0.30


def score_condition(condition: Condition, symptom_ids: set[str]) -> MatchResult:
    required = condition.required_symptoms
    if not required:
        return MatchResult(condition=condition, match_count=0, match_ratio=0.0)
    match_count = len(required & symptom_ids)
    return MatchResult(condition=condition, match_count=match_count, match_ratio=match_count / len(required))


class ConditionMatcher:
    def __init__(self, catalog: Catalog, threshold: float = MATCH_THRESHOLD) -> None:
        self.catalog = catalog
        self.threshold = threshold

    def match(self, symptom_ids: Iterable[str]) -> list[MatchResult]:
        detected = set(symptom_ids)
        if not detected:
            return []
        candidates = [score_condition(condition, detected) for condition in self.catalog.conditions]
        kept = [result for result in candidates if result.match_ratio > self.threshold]
        # sorted() is stable, so equal ratios keep catalog declaration order.
        return sorted(kept, key=lambda result: result.match_ratio, reverse=True)
