from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from . import locales
from .interfaces import COMPLETION_APOLOGY, CompletionProvider, call_with_fallback, is_completion_failure
from .models import Condition, MatchResult, Symptom

SYSTEM_INSTRUCTION = (
    "You are a helpful medical assistant providing concise, accurate information. "
    "Always clarify that you're not a doctor and serious symptoms require medical attention."
)


@dataclass(frozen=True)
class ComposedResponse:
    text: str
    path: str
    completion_ok: bool


class ResponseComposer:
    def __init__(
        self,
        completion: CompletionProvider,
        *,
        timeout_seconds: float = 25.0,
        system_instruction: str = SYSTEM_INSTRUCTION,
    ) -> None:
        self.completion = completion
        self.timeout_seconds = timeout_seconds
        self.system_instruction = system_instruction

    async def compose(
        self,
        symptoms: Sequence[Symptom],
        matches: Sequence[MatchResult],
        raw_text: str,
        language: str,
    ) -> ComposedResponse:
        if matches:
            top = matches[0].condition
            local = self.condition_summary(top, language)
            prompt = locales.resolve("prompt.condition", language, name=top.name)
            return await self._with_supplement(local, prompt, language, path="condition")

        if symptoms:
            names = ", ".join(symptom.name for symptom in symptoms)
            local = locales.resolve("compose.symptoms_only", language, symptoms=names)
            prompt = locales.resolve("prompt.symptoms", language, symptoms=names)
            return await self._with_supplement(local, prompt, language, path="symptoms")

        completion = await self._complete(raw_text)
        if is_completion_failure(completion):
            return ComposedResponse(
                text=locales.resolve("compose.no_symptoms", language),
                path="model",
                completion_ok=False,
            )
        return ComposedResponse(text=completion.strip(), path="model", completion_ok=True)

    def condition_summary(self, condition: Condition, language: str) -> str:
        text = locales.resolve(
            "compose.condition",
            language,
            name=condition.name,
            description=condition.description,
        )
        text += locales.resolve(
            "compose.recommendations",
            language,
            recommendations=". ".join(condition.recommendations),
        )
        if condition.severity in {"medium", "high"}:
            text += locales.resolve("compose.severity_elevated", language, severity=condition.severity)
        else:
            text += locales.resolve("compose.severity_low", language)
        return text

    async def _with_supplement(self, local: str, prompt: str, language: str, *, path: str) -> ComposedResponse:
        completion = await self._complete(prompt)
        if is_completion_failure(completion):
            logger.warning("completion unavailable for {} response; returning local text only", path)
            return ComposedResponse(text=local.strip(), path=path, completion_ok=False)
        supplement = locales.resolve("compose.supplement", language, text=completion.strip())
        return ComposedResponse(text=f"{local.strip()}\n\n{supplement}", path=path, completion_ok=True)

    async def _complete(self, prompt: str) -> str:
        if not (prompt or "").strip():
            return COMPLETION_APOLOGY
        return await call_with_fallback(
            self.completion.complete(prompt, self.system_instruction),
            fallback=COMPLETION_APOLOGY,
            timeout_seconds=self.timeout_seconds,
            label="completion",
        )
