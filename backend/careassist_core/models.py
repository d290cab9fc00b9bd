from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .time_utils import to_iso, utc_now


SEVERITIES = ("low", "medium", "high")
SENDERS = {"user", "assistant"}
TURN_STATES = {
    "idle",
    "capturing",
    "detecting",
    "translating_in",
    "analyzing",
    "composing",
    "translating_out",
    "speaking",
}
TURN_STATUSES = {"answered", "discarded", "aborted", "stale"}


@dataclass(frozen=True)
class Symptom:
    id: str
    name: str
    keywords: frozenset[str]

    def as_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "keywords": sorted(self.keywords)}


@dataclass(frozen=True)
class Condition:
    id: str
    name: str
    required_symptoms: frozenset[str]
    description: str
    recommendations: tuple[str, ...]
    severity: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "required_symptoms": sorted(self.required_symptoms),
            "description": self.description,
            "recommendations": list(self.recommendations),
            "severity": self.severity,
        }


@dataclass(frozen=True)
class MatchResult:
    condition: Condition
    match_count: int
    match_ratio: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition.as_dict(),
            "match_count": self.match_count,
            "match_ratio": round(self.match_ratio, 4),
        }


@dataclass(frozen=True)
class Message:
    text: str
    sender: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=utc_now)
    original_text: str | None = None
    language: str | None = None
    turn_id: str | None = None
    detected_symptoms: tuple[Symptom, ...] = ()
    matched_conditions: tuple[Condition, ...] = ()

    def __post_init__(self) -> None:
        if self.sender not in SENDERS:
            raise ValueError(f"Unknown message sender: {self.sender}")

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "original_text": self.original_text,
            "sender": self.sender,
            "timestamp": to_iso(self.timestamp),
            "language": self.language,
            "turn_id": self.turn_id,
            "detected_symptoms": [{"id": s.id, "name": s.name} for s in self.detected_symptoms],
            "matched_conditions": [
                {"id": c.id, "name": c.name, "severity": c.severity} for c in self.matched_conditions
            ],
        }


@dataclass
class ConversationState:
    working_language: str = "en"
    auto_translate: bool = True
    symptom_model_enabled: bool = True
    voice_input_enabled: bool = True
    speech_output_enabled: bool = True

    def as_dict(self) -> dict[str, Any]:
        return {
            "working_language": self.working_language,
            "auto_translate": self.auto_translate,
            "symptom_model_enabled": self.symptom_model_enabled,
            "voice_input_enabled": self.voice_input_enabled,
            "speech_output_enabled": self.speech_output_enabled,
        }


@dataclass
class Notice:
    code: str
    text: str
    id: str = field(default_factory=lambda: f"ntc_{uuid.uuid4().hex[:16]}")
    dismissible: bool = True
    dismissed: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "text": self.text,
            "dismissible": self.dismissible,
            "dismissed": self.dismissed,
        }


@dataclass(frozen=True)
class CaptureEvent:
    kind: str
    transcript: str = ""
    code: str | None = None


@dataclass
class TurnOutcome:
    turn_id: str
    generation: int
    status: str
    lifecycle: list[str] = field(default_factory=list)
    detected_language: str | None = None
    output_language: str | None = None
    user_message: Message | None = None
    assistant_message: Message | None = None
    matches: list[MatchResult] = field(default_factory=list)
    notices: list[Notice] = field(default_factory=list)
    language_suggestion: str | None = None

    def __post_init__(self) -> None:
        if self.status not in TURN_STATUSES:
            raise ValueError(f"Unknown turn status: {self.status}")
        unknown = [state for state in self.lifecycle if state not in TURN_STATES]
        if unknown:
            raise ValueError(f"Unknown turn states: {', '.join(unknown)}")

    def as_envelope(self) -> dict[str, Any]:
        return {
            "turn_id": self.turn_id,
            "generation": self.generation,
            "status": self.status,
            "lifecycle": self.lifecycle,
            "detected_language": self.detected_language,
            "output_language": self.output_language,
            "user_message": self.user_message.as_dict() if self.user_message else None,
            "assistant_message": self.assistant_message.as_dict() if self.assistant_message else None,
            "matches": [match.as_dict() for match in self.matches],
            "notices": [notice.as_dict() for notice in self.notices],
            "language_suggestion": self.language_suggestion,
        }
