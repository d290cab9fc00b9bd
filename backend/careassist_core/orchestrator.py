"""Turn-level conversation pipeline.

One turn walks idle -> capturing -> detecting -> translating_in -> analyzing
-> composing -> translating_out -> speaking -> idle. Each external call is an
await point with a bounded timeout. Every turn carries a generation number;
after each await the turn re-checks it, and once a newer turn has started (or
the session has ended) the older one is dropped without writing to the
conversation log. Empty input never opens a generation.
"""

from __future__ import annotations

from typing import Callable

from loguru import logger

from . import locales
from .composer import ResponseComposer
from .conversation import ConversationLog, NoticeBoard
from .extractor import SymptomExtractor
from .hooks import HookRunner
from .interfaces import (
    UNSUPPORTED_CAPTURE_CODES,
    Detector,
    SpeechCapture,
    SpeechPlayback,
    Translator,
    call_with_fallback,
)
from .lifecycle import StateListener, TurnLifecycle, TurnRecord
from .matcher import ConditionMatcher
from .models import CaptureEvent, ConversationState, MatchResult, Message, Notice, Symptom, TurnOutcome
from .preferences import ConversationSettings


class ConversationOrchestrator:
    def __init__(
        self,
        *,
        extractor: SymptomExtractor,
        matcher: ConditionMatcher,
        composer: ResponseComposer,
        detector: Detector,
        translator: Translator,
        settings: ConversationSettings,
        log: ConversationLog | None = None,
        notices: NoticeBoard | None = None,
        playback: SpeechPlayback | None = None,
        hooks: HookRunner | None = None,
        session_key: str = "default",
        pivot_language: str = "en",
        timeout_seconds: float = 25.0,
        abort_on_completion_failure: bool = True,
    ) -> None:
        self.extractor = extractor
        self.matcher = matcher
        self.composer = composer
        self.detector = detector
        self.translator = translator
        self.settings = settings
        self.log = log if log is not None else ConversationLog()
        self.notices = notices if notices is not None else NoticeBoard()
        self.playback = playback
        self.hooks = hooks if hooks is not None else HookRunner()
        self.session_key = session_key
        self.pivot_language = locales.primary_language(pivot_language) or locales.DEFAULT_LANGUAGE
        self.timeout_seconds = timeout_seconds
        self.abort_on_completion_failure = abort_on_completion_failure
        self.lifecycle = TurnLifecycle()
        self.live_transcript: str | None = None
        self.last_outcome: TurnOutcome | None = None

    @property
    def state(self) -> str:
        current = self.lifecycle.current
        if current is not None and not current.finished:
            return current.state
        if self.live_transcript is not None:
            return "capturing"
        return "idle"

    async def submit(self, text: str, *, on_state: StateListener | None = None) -> TurnOutcome:
        cleaned = (text or "").strip()
        if not cleaned:
            record = self.lifecycle.start(listener=on_state, detached=True)
            self.lifecycle.transition(record, "capturing")
            return self._finish(record, "discarded")

        record = self.lifecycle.start(listener=on_state)
        self.lifecycle.transition(record, "capturing")
        self.live_transcript = None

        state = self.settings.load()
        self.lifecycle.transition(record, "detecting")
        user_message = self.log.append(Message(text=cleaned, sender="user", turn_id=record.turn_id))

        detected = await call_with_fallback(
            self.detector.detect(cleaned, state.working_language),
            fallback=state.working_language,
            timeout_seconds=self.timeout_seconds,
            label="language detection",
        )
        detected = locales.primary_language(detected) or state.working_language
        suggestion = self._language_suggestion(detected, state)
        if not self.lifecycle.is_current(record):
            return self._finish(record, "stale", detected_language=detected, user_message=user_message)

        self.lifecycle.transition(record, "translating_in")
        pivot_text = cleaned
        if detected != self.pivot_language:
            pivot_text = await call_with_fallback(
                self.translator.translate(cleaned, self.pivot_language, detected),
                fallback=cleaned,
                timeout_seconds=self.timeout_seconds,
                label="inbound translation",
            )
            pivot_text = pivot_text or cleaned
            if not self.lifecycle.is_current(record):
                return self._finish(record, "stale", detected_language=detected, user_message=user_message)

        self.lifecycle.transition(record, "analyzing")
        symptoms: list[Symptom] = []
        matches: list[MatchResult] = []
        if state.symptom_model_enabled:
            symptoms = self.extractor.catalog.ordered(self.extractor.extract(pivot_text))
            matches = self.matcher.match(symptom.id for symptom in symptoms)

        self.lifecycle.transition(record, "composing")
        composed = await self.composer.compose(symptoms, matches, pivot_text, self.pivot_language)
        if not self.lifecycle.is_current(record):
            return self._finish(record, "stale", detected_language=detected, user_message=user_message)
        if not composed.completion_ok and self.abort_on_completion_failure:
            notice = self.notices.emit(
                "completion_unavailable",
                locales.resolve("notice.completion_unavailable", state.working_language),
            )
            logger.warning("turn {} aborted: completion provider unavailable", record.turn_id)
            return self._finish(
                record,
                "aborted",
                detected_language=detected,
                user_message=user_message,
                notices=[notice] if notice else [],
                language_suggestion=suggestion,
            )

        self.lifecycle.transition(record, "translating_out")
        reply_text = composed.text
        output_language = self.pivot_language
        if state.auto_translate and detected != self.pivot_language:
            translated = await call_with_fallback(
                self.translator.translate(composed.text, detected, self.pivot_language),
                fallback=composed.text,
                timeout_seconds=self.timeout_seconds,
                label="outbound translation",
            )
            if not self.lifecycle.is_current(record):
                return self._finish(record, "stale", detected_language=detected, user_message=user_message)
            if translated and translated != composed.text:
                reply_text = translated
                output_language = detected

        assistant_message = self.log.append(
            Message(
                text=reply_text,
                sender="assistant",
                original_text=composed.text if reply_text != composed.text else None,
                language=output_language,
                turn_id=record.turn_id,
                detected_symptoms=tuple(symptoms),
                matched_conditions=tuple(match.condition for match in matches),
            )
        )

        self.lifecycle.transition(record, "speaking")
        notices = self._dispatch_speech(reply_text, output_language, state)
        return self._finish(
            record,
            "answered",
            detected_language=detected,
            output_language=output_language,
            user_message=user_message,
            assistant_message=assistant_message,
            matches=matches,
            notices=notices,
            language_suggestion=suggestion,
        )

    async def handle_capture_event(self, event: CaptureEvent) -> TurnOutcome | None:
        if event.kind == "partial":
            self.live_transcript = event.transcript
            return None
        if event.kind == "final":
            self.live_transcript = None
            return await self.submit(event.transcript)
        if event.kind == "error":
            self.live_transcript = None
            state = self.settings.load()
            code = (event.code or "unknown").strip().lower()
            if code in UNSUPPORTED_CAPTURE_CODES:
                self._capability_unsupported("voice_input", state)
            else:
                logger.warning("speech capture error: {}", code)
                self.notices.emit(
                    "capture_error",
                    locales.resolve("notice.capture_error", state.working_language, code=code),
                )
            return None
        logger.warning("ignoring unknown capture event kind: {}", event.kind)
        return None

    def attach_capture(
        self,
        capture: SpeechCapture,
        on_outcome: Callable[[TurnOutcome], None] | None = None,
    ) -> None:
        async def _listener(event: CaptureEvent) -> None:
            outcome = await self.handle_capture_event(event)
            if outcome is not None and on_outcome is not None:
                on_outcome(outcome)

        capture.subscribe(_listener)

    def report_capabilities(
        self,
        *,
        voice_input: bool | None = None,
        speech_output: bool | None = None,
    ) -> list[Notice]:
        state = self.settings.load()
        notices: list[Notice] = []
        if voice_input is False:
            notice = self._capability_unsupported("voice_input", state)
            if notice:
                notices.append(notice)
        if speech_output is False:
            notice = self._capability_unsupported("speech_output", state)
            if notice:
                notices.append(notice)
        return notices

    def end_session(self) -> None:
        self.lifecycle.invalidate()
        if self.playback is not None:
            self.playback.cancel()
        self.live_transcript = None
        self.log.close()

    def _language_suggestion(self, detected: str, state: ConversationState) -> str | None:
        if detected == locales.primary_language(state.working_language):
            return None
        if not locales.is_supported_language(detected):
            return None
        return detected

    def _dispatch_speech(self, text: str, language: str, state: ConversationState) -> list[Notice]:
        if not state.speech_output_enabled or self.playback is None:
            return []
        if not getattr(self.playback, "supported", True):
            notice = self._capability_unsupported("speech_output", state)
            return [notice] if notice else []
        try:
            self.playback.cancel()
            self.playback.speak(text, locales.speech_tag(language))
        except Exception as exc:
            logger.warning("speech playback dispatch failed: {}", exc)
        return []

    def _capability_unsupported(self, capability: str, state: ConversationState) -> Notice | None:
        toggle = f"{capability}_enabled"
        if getattr(state, toggle, False):
            self.settings.update(**{toggle: False})
        return self.notices.emit(
            f"{capability}_unsupported",
            locales.resolve(f"notice.{capability}_unsupported", state.working_language),
            once_per_session=True,
        )

    def _finish(self, record: TurnRecord, status: str, **fields) -> TurnOutcome:
        if record.state != "idle":
            self.lifecycle.transition(record, "idle")
        outcome = TurnOutcome(
            turn_id=record.turn_id,
            generation=record.generation,
            status=status,
            lifecycle=list(record.lifecycle),
            **fields,
        )
        if status == "stale":
            logger.info("discarding stale turn {} (generation {})", record.turn_id, record.generation)
        elif status != "discarded":
            self.last_outcome = outcome
        self.hooks.run_after(self.session_key, outcome)
        return outcome
