from __future__ import annotations

from typing import Iterable

from .models import SEVERITIES, Condition, Symptom


class CatalogError(Exception):
    pass


def _symptom(symptom_id: str, name: str, keywords: list[str]) -> Symptom:
    return Symptom(id=symptom_id, name=name, keywords=frozenset(keyword.lower() for keyword in keywords))


def _condition(
    condition_id: str,
    name: str,
    required: list[str],
    description: str,
    recommendations: list[str],
    severity: str,
) -> Condition:
    return Condition(
        id=condition_id,
        name=name,
        required_symptoms=frozenset(required),
        description=description,
        recommendations=tuple(recommendations),
        severity=severity,
    )


# Keyword variants: English, Spanish, Portuguese, German, French, Chinese, Japanese, Hindi.
SYMPTOMS: tuple[Symptom, ...] = (
    _symptom(
        "fever",
        "Fever",
        ["fever", "high temperature", "hot", "temperature", "fiebre", "febre", "fieber", "fièvre", "发烧", "熱", "बुखार"],
    ),
    _symptom("cough", "Cough", ["cough", "coughing", "tos", "tosse", "husten", "toux", "咳嗽", "खांसी"]),
    _symptom(
        "headache",
        "Headache",
        [
            "headache",
            "head pain",
            "dolor de cabeza",
            "dor de cabeça",
            "kopfschmerzen",
            "mal de tête",
            "头痛",
            "頭痛",
            "सिरदर्द",
        ],
    ),
    _symptom(
        "sore_throat",
        "Sore Throat",
        [
            "sore throat",
            "throat pain",
            "dolor de garganta",
            "dor de garganta",
            "halsschmerzen",
            "mal de gorge",
            "喉咙痛",
            "喉の痛み",
            "गले में खराश",
        ],
    ),
    _symptom(
        "runny_nose",
        "Runny Nose",
        [
            "runny nose",
            "nasal congestion",
            "nariz que moquea",
            "coriza",
            "laufende nase",
            "nez qui coule",
            "流鼻涕",
            "鼻水",
            "बहती नाक",
        ],
    ),
    _symptom(
        "fatigue",
        "Fatigue",
        ["fatigue", "tired", "exhausted", "fatiga", "cansancio", "müdigkeit", "疲劳", "疲れ", "थकान"],
    ),
    _symptom("nausea", "Nausea", ["nausea", "feeling sick", "náusea", "übelkeit", "nausée", "恶心", "吐き気", "मतली"]),
    _symptom(
        "diarrhea",
        "Diarrhea",
        ["diarrhea", "loose stool", "diarrea", "durchfall", "diarrhée", "腹泻", "下痢", "दस्त"],
    ),
    _symptom(
        "body_aches",
        "Body Aches",
        [
            "body ache",
            "muscle pain",
            "dolor corporal",
            "dolores musculares",
            "gliederschmerzen",
            "douleurs musculaires",
            "身体疼痛",
            "体の痛み",
            "शरीर में दर्द",
        ],
    ),
    _symptom(
        "chills",
        "Chills",
        ["chills", "shivering", "escalofríos", "schüttelfrost", "frissons", "发冷", "寒気", "ठंड लगना"],
    ),
)


CONDITIONS: tuple[Condition, ...] = (
    _condition(
        "common_cold",
        "Common Cold",
        ["runny_nose", "cough", "sore_throat", "fatigue"],
        "A viral infection of the upper respiratory tract. Usually harmless and resolves within 7-10 days.",
        [
            "Rest and stay hydrated",
            "Use over-the-counter cold medications if needed",
            "Use a humidifier to ease congestion",
            "Try salt water gargle for sore throat",
        ],
        "low",
    ),
    _condition(
        "flu",
        "Influenza (Flu)",
        ["fever", "cough", "body_aches", "fatigue", "chills", "headache"],
        "A contagious respiratory illness caused by influenza viruses. More severe than a common cold.",
        [
            "Rest and stay hydrated",
            "Take fever reducers like acetaminophen or ibuprofen",
            "Consult a doctor if symptoms are severe",
            "Consider annual flu vaccination for prevention",
        ],
        "medium",
    ),
    _condition(
        "gastroenteritis",
        "Gastroenteritis",
        ["nausea", "diarrhea", "fever", "fatigue"],
        "An intestinal infection marked by diarrhea, nausea, and sometimes vomiting. Often called stomach flu.",
        [
            "Stay hydrated with clear liquids",
            "Eat bland foods when returning to solid diet",
            "Avoid dairy, caffeine, and spicy foods",
            "Seek medical care if symptoms persist beyond 3 days",
        ],
        "medium",
    ),
    _condition(
        "migraine",
        "Migraine",
        ["headache", "nausea", "fatigue"],
        "A neurological condition that can cause severe headaches, often with nausea and sensitivity to light and sound.",
        [
            "Rest in a quiet, dark room",
            "Apply cold compresses to your forehead",
            "Consider over-the-counter pain relievers",
            "Consult a doctor for recurring migraines",
        ],
        "medium",
    ),
    _condition(
        "strep_throat",
        "Strep Throat",
        ["sore_throat", "fever", "headache"],
        "A bacterial infection that causes inflammation and pain in the throat.",
        [
            "See a doctor for proper diagnosis and antibiotics",
            "Rest and drink warm liquids",
            "Take pain relievers for discomfort",
            "Use throat lozenges to soothe pain",
        ],
        "medium",
    ),
)


class Catalog:
    """Symptom lexicon plus condition catalog, validated at construction."""

    def __init__(self, symptoms: Iterable[Symptom], conditions: Iterable[Condition]) -> None:
        self.symptoms: tuple[Symptom, ...] = tuple(symptoms)
        self.conditions: tuple[Condition, ...] = tuple(conditions)
        self._symptoms_by_id: dict[str, Symptom] = {}
        self._order: dict[str, int] = {}
        for index, symptom in enumerate(self.symptoms):
            if symptom.id in self._symptoms_by_id:
                raise CatalogError(f"Duplicate symptom id: {symptom.id}")
            self._symptoms_by_id[symptom.id] = symptom
            self._order[symptom.id] = index

        seen_conditions: set[str] = set()
        for condition in self.conditions:
            if condition.id in seen_conditions:
                raise CatalogError(f"Duplicate condition id: {condition.id}")
            seen_conditions.add(condition.id)
            if condition.severity not in SEVERITIES:
                raise CatalogError(f"Condition '{condition.id}' has unknown severity: {condition.severity}")
            missing = sorted(condition.required_symptoms - self._symptoms_by_id.keys())
            if missing:
                raise CatalogError(
                    f"Condition '{condition.id}' requires unknown symptoms: {', '.join(missing)}"
                )

    def symptom(self, symptom_id: str) -> Symptom:
        symptom = self._symptoms_by_id.get(symptom_id)
        if not symptom:
            raise KeyError(f"Symptom not found: {symptom_id}")
        return symptom

    def ordered(self, symptoms: Iterable[Symptom]) -> list[Symptom]:
        return sorted(set(symptoms), key=lambda symptom: self._order.get(symptom.id, len(self._order)))


def default_catalog() -> Catalog:
    return Catalog(SYMPTOMS, CONDITIONS)
