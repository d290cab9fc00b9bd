from __future__ import annotations

from .catalog import Catalog
from .models import Symptom


class SymptomExtractor:
    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def extract(self, text: str) -> set[Symptom]:
        # Plain substring containment: no tokenization, no stemming.
        lowered = (text or "").lower()
        if not lowered.strip():
            return set()
        return {
            symptom
            for symptom in self.catalog.symptoms
            if any(keyword in lowered for keyword in symptom.keywords)
        }
