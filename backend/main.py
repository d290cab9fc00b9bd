from __future__ import annotations

import asyncio
import hashlib
import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Form, Header, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import BaseModel

from careassist_core import (
    ConditionMatcher,
    ConversationOrchestrator,
    ConversationSettings,
    HookRunner,
    PreferenceError,
    ResponseComposer,
    SymptomExtractor,
    TurnOutcome,
    default_catalog,
    locales,
)
from careassist_services import (
    CompletionService,
    GoogleTranslateService,
    SSESpeechPlayback,
    TranscriptionError,
    WhisperSpeechCapture,
    chat_provider_candidates,
    openai_whisper_transcribe,
)
from config import AppConfig, bootstrap_local_env
from storage import SQLitePreferenceStore, SQLiteStore, TurnAuditStore

bootstrap_local_env()


class ChatRequest(BaseModel):
    message: str
    session_key: str | None = None


class AnalyzeRequest(BaseModel):
    text: str


class PreferencesPayload(BaseModel):
    working_language: str | None = None
    auto_translate: bool | None = None
    symptom_model_enabled: bool | None = None
    voice_input_enabled: bool | None = None
    speech_output_enabled: bool | None = None


class ApiKeysPayload(BaseModel):
    google_translate_api_key: str | None = None
    openai_api_key: str | None = None


class CapabilitiesPayload(BaseModel):
    voice_input: bool | None = None
    speech_output: bool | None = None


@dataclass
class ChatSession:
    user_id: str
    session_key: str
    orchestrator: ConversationOrchestrator
    playback: SSESpeechPlayback


class CareAssistApp:
    def __init__(self) -> None:
        self.config = AppConfig.from_env()
        self.db = SQLiteStore(self.config.db_path)
        self.audit = TurnAuditStore(self.db)
        self.catalog = default_catalog()
        self.extractor = SymptomExtractor(self.catalog)
        self.matcher = ConditionMatcher(self.catalog)
        self._sessions: dict[tuple[str, str], ChatSession] = {}

    def settings_for(self, user_id: str, accept_language: str | None = None) -> ConversationSettings:
        default_language = self.config.default_language
        browser_language = _primary_accept_language(accept_language)
        if browser_language and locales.is_supported_language(browser_language):
            default_language = browser_language
        return ConversationSettings(SQLitePreferenceStore(self.db, user_id), default_language=default_language)

    def translator_for(self, settings: ConversationSettings) -> GoogleTranslateService:
        return GoogleTranslateService(
            api_key=lambda: settings.credential("google_translate_api_key") or _env_key("GOOGLE_TRANSLATE_API_KEY"),
            timeout_seconds=self.config.call_timeout_seconds,
            enabled=self.config.external_enabled,
        )

    def completion_for(self, settings: ConversationSettings) -> CompletionService:
        return CompletionService(
            candidates=lambda: chat_provider_candidates(settings.credential("openai_api_key")),
            timeout_seconds=self.config.call_timeout_seconds,
            enabled=self.config.external_enabled,
        )

    def session(self, user_id: str, session_key: str, accept_language: str | None = None) -> ChatSession:
        existing = self._sessions.get((user_id, session_key))
        if existing:
            return existing
        settings = self.settings_for(user_id, accept_language)
        translator = self.translator_for(settings)
        playback = SSESpeechPlayback()
        hooks = HookRunner()
        hooks.add_after(lambda key, outcome: self._audit_turn(user_id, key, outcome))
        orchestrator = ConversationOrchestrator(
            extractor=self.extractor,
            matcher=self.matcher,
            composer=ResponseComposer(
                self.completion_for(settings),
                timeout_seconds=self.config.call_timeout_seconds,
            ),
            detector=translator,
            translator=translator,
            settings=settings,
            playback=playback,
            hooks=hooks,
            session_key=session_key,
            pivot_language=self.config.pivot_language,
            timeout_seconds=self.config.call_timeout_seconds,
        )
        session = ChatSession(user_id=user_id, session_key=session_key, orchestrator=orchestrator, playback=playback)
        self._sessions[(user_id, session_key)] = session
        return session

    def find_session(self, user_id: str, session_key: str) -> ChatSession:
        session = self._sessions.get((user_id, session_key))
        if not session:
            raise HTTPException(status_code=404, detail="Conversation not found.")
        return session

    def end_session(self, user_id: str, session_key: str) -> bool:
        session = self._sessions.pop((user_id, session_key), None)
        if not session:
            return False
        session.orchestrator.end_session()
        return True

    def _audit_turn(self, user_id: str, session_key: str, outcome: TurnOutcome) -> None:
        if outcome.status == "discarded":
            return
        message = outcome.assistant_message
        self.audit.record_turn(
            user_id=user_id,
            session_key=session_key,
            turn_id=outcome.turn_id,
            generation=outcome.generation,
            status=outcome.status,
            detected_language=outcome.detected_language,
            lifecycle=outcome.lifecycle,
            symptom_ids=[symptom.id for symptom in message.detected_symptoms] if message else [],
            condition_ids=[condition.id for condition in message.matched_conditions] if message else [],
        )


def _env_key(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or None


def _primary_accept_language(accept_language: str | None) -> str | None:
    if not accept_language:
        return None
    first = accept_language.split(",")[0].split(";")[0].strip()
    return locales.primary_language(first) or None


container = CareAssistApp()
app = FastAPI(title="CareAssist Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=container.config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_TRUSTED_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")
_MAX_SESSION_KEY_LENGTH = 128


def _validated_trusted_user_id(x_user_id: str) -> str:
    candidate = x_user_id.strip()
    if not candidate or not _TRUSTED_USER_ID_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid X-User-Id")
    return candidate


def get_user_id(auth_header: str | None) -> str:
    raw = (auth_header or "").replace("Bearer", "", 1).strip()
    if not raw:
        if container.config.allow_anon:
            return "demo-user"
        raise HTTPException(status_code=401, detail="Missing Authorization")
    # Bearer tokens are opaque; long ones are hashed into a stable id.
    if len(raw) > 96:
        return f"token_{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:24]}"
    return raw


def resolve_user_id(authorization: str | None, x_user_id: str | None) -> str:
    if x_user_id is not None:
        return _validated_trusted_user_id(x_user_id)
    return get_user_id(authorization)


def _session_key(user_id: str, session_key: str | None) -> str:
    if session_key is None or not session_key.strip():
        return f"session-{hashlib.sha1(user_id.encode('utf-8')).hexdigest()[:24]}"
    cleaned = session_key.strip()
    if len(cleaned) > _MAX_SESSION_KEY_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid session scope.")
    return cleaned


def _emit_sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def _token_chunks(text: str) -> list[str]:
    return re.findall(r"\S+\s*", text)


def _language_suggestion_payload(code: str, working_language: str) -> dict[str, Any]:
    return {
        "language": code,
        "name": locales.language_name(code),
        "prompt": locales.resolve(
            "suggestion.language_switch",
            working_language,
            language_name=locales.language_name(code),
        ),
    }


_ALLOWED_AUDIO_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/mp4",
    "audio/m4a",
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
}
_ALLOWED_AUDIO_EXTENSIONS = {".mp3", ".mp4", ".m4a", ".wav", ".webm", ".ogg", ".flac"}


def _validate_audio_upload(file_name: str, mime_type: str) -> None:
    extension = Path(file_name).suffix.lower().strip()
    if mime_type in _ALLOWED_AUDIO_MIME_TYPES or extension in _ALLOWED_AUDIO_EXTENSIONS:
        return
    raise HTTPException(status_code=415, detail="Unsupported audio format.")


async def transcribe_audio(*, api_key: str | None, **kwargs: Any) -> dict[str, Any]:
    return await openai_whisper_transcribe(api_key=api_key, **kwargs)


@app.get("/health")
def health():
    return {"ok": True, "external_enabled": container.config.external_enabled}


@app.get("/languages")
def get_languages():
    return {
        "languages": locales.SUPPORTED_LANGUAGES,
        "default": container.config.default_language,
        "pivot": container.config.pivot_language,
    }


@app.get("/catalog")
def get_catalog():
    return {
        "symptoms": [symptom.as_dict() for symptom in container.catalog.symptoms],
        "conditions": [condition.as_dict() for condition in container.catalog.conditions],
    }


@app.post("/symptoms/analyze")
def analyze_symptoms(payload: AnalyzeRequest):
    symptoms = container.catalog.ordered(container.extractor.extract(payload.text))
    matches = container.matcher.match(symptom.id for symptom in symptoms)
    return {
        "symptoms": [{"id": symptom.id, "name": symptom.name} for symptom in symptoms],
        "matches": [match.as_dict() for match in matches],
    }


@app.get("/preferences")
def get_preferences(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    accept_language: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    state = container.settings_for(user_id, accept_language).load()
    return {
        "preferences": state.as_dict(),
        "copy": {
            "greeting": locales.resolve("greeting", state.working_language),
            "disclaimer": locales.resolve("disclaimer", state.working_language),
        },
    }


@app.post("/preferences")
def update_preferences(
    payload: PreferencesPayload,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    accept_language: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    settings = container.settings_for(user_id, accept_language)
    try:
        state = settings.update(**payload.model_dump(exclude_none=True))
    except PreferenceError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"preferences": state.as_dict()}


@app.post("/settings/api-keys")
def save_api_keys(
    payload: ApiKeysPayload,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    settings = container.settings_for(user_id)
    provided = {key: value for key, value in payload.model_dump().items() if value is not None}
    if not provided:
        raise HTTPException(status_code=400, detail="Please enter a valid API key")
    try:
        for key, value in provided.items():
            settings.set_credential(key, value)
    except PreferenceError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"saved": sorted(provided)}


@app.post("/chat/stream")
def chat_stream(
    payload: ChatRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    accept_language: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    session = container.session(user_id, _session_key(user_id, payload.session_key), accept_language)
    orchestrator = session.orchestrator

    async def event_stream():
        states: asyncio.Queue = asyncio.Queue()
        try:
            # State events are streamed as the turn advances, before its reply.
            turn = asyncio.create_task(orchestrator.submit(payload.message, on_state=states.put_nowait))
            turn.add_done_callback(lambda _: states.put_nowait(None))
            while True:
                state = await states.get()
                if state is None:
                    break
                yield _emit_sse("state", {"state": state})
            outcome = await turn
            for notice in outcome.notices:
                yield _emit_sse("notice", notice.as_dict())
            if outcome.assistant_message is not None:
                reply = outcome.assistant_message.text
                for chunk in _token_chunks(reply):
                    yield _emit_sse("token", {"delta": chunk})
                yield _emit_sse("message", outcome.assistant_message.as_dict())
                for request in session.playback.drain():
                    yield _emit_sse("speak", request.as_dict())
            if outcome.language_suggestion:
                working_language = orchestrator.settings.load().working_language
                yield _emit_sse(
                    "language_suggestion",
                    _language_suggestion_payload(outcome.language_suggestion, working_language),
                )
            yield _emit_sse("turn", {"turn_id": outcome.turn_id, "status": outcome.status})
        except Exception:
            logger.exception("chat_stream error")
            yield _emit_sse("error", {"message": "Chat pipeline error."})

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@app.get("/conversations/{session_key}/messages")
def get_messages(
    session_key: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    session = container.find_session(user_id, _session_key(user_id, session_key))
    return {
        "state": session.orchestrator.state,
        "live_transcript": session.orchestrator.live_transcript,
        "items": [message.as_dict() for message in session.orchestrator.log],
    }


@app.delete("/conversations/{session_key}")
def end_conversation(
    session_key: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    if not container.end_session(user_id, _session_key(user_id, session_key)):
        raise HTTPException(status_code=404, detail="Conversation not found.")
    return {"ended": True}


@app.get("/conversations/{session_key}/notices")
def get_notices(
    session_key: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    session = container.find_session(user_id, _session_key(user_id, session_key))
    return {"items": [notice.as_dict() for notice in session.orchestrator.notices.active()]}


@app.post("/conversations/{session_key}/notices/{notice_id}/dismiss")
def dismiss_notice(
    session_key: str,
    notice_id: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    session = container.find_session(user_id, _session_key(user_id, session_key))
    try:
        notice = session.orchestrator.notices.dismiss(notice_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Notice not found.") from exc
    return notice.as_dict()


@app.post("/conversations/{session_key}/capabilities")
def report_capabilities(
    session_key: str,
    payload: CapabilitiesPayload,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    accept_language: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    session = container.session(user_id, _session_key(user_id, session_key), accept_language)
    if payload.speech_output is not None:
        session.playback.supported = payload.speech_output
    notices = session.orchestrator.report_capabilities(
        voice_input=payload.voice_input,
        speech_output=payload.speech_output,
    )
    return {
        "preferences": session.orchestrator.settings.load().as_dict(),
        "notices": [notice.as_dict() for notice in notices],
    }


@app.post("/conversations/{session_key}/speech/{utterance_id}/complete")
def speech_complete(
    session_key: str,
    utterance_id: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    session = container.find_session(user_id, _session_key(user_id, session_key))
    return {"acknowledged": session.playback.mark_complete(utterance_id)}


@app.get("/conversations/{session_key}/turns")
def get_turns(
    session_key: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    items = container.audit.list_turns(user_id=user_id, session_key=_session_key(user_id, session_key))
    return {"items": items}


@app.post("/voice/transcribe")
async def voice_transcribe(
    audio: UploadFile | None = File(default=None),
    file: UploadFile | None = File(default=None),
    session_key: str | None = Form(default=None),
    language_hint: str | None = Form(default=None),
    prompt: str | None = Form(default=None),
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    accept_language: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    session = container.session(user_id, _session_key(user_id, session_key), accept_language)
    orchestrator = session.orchestrator
    settings = orchestrator.settings
    if not settings.load().voice_input_enabled:
        raise HTTPException(status_code=409, detail="Voice input is disabled for this user.")

    upload = audio or file
    if upload is None:
        raise HTTPException(status_code=400, detail="Missing audio upload.")
    file_name = (upload.filename or "").strip() or "audio-upload"
    mime_type = (upload.content_type or "").lower().strip()
    _validate_audio_upload(file_name, mime_type)

    max_bytes = container.config.max_audio_bytes
    audio_bytes = await upload.read(max_bytes + 1)
    if len(audio_bytes) > max_bytes:
        raise HTTPException(status_code=413, detail=f"Audio file exceeds {max_bytes // (1024 * 1024)}MB limit.")
    if not audio_bytes:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    capture = WhisperSpeechCapture(
        transcriber=lambda **kwargs: transcribe_audio(
            api_key=settings.credential("openai_api_key") or _env_key("OPENAI_API_KEY"),
            **kwargs,
        )
    )
    outcomes: list[TurnOutcome] = []
    orchestrator.attach_capture(capture, on_outcome=outcomes.append)
    try:
        transcription = await capture.capture(
            file_name=file_name,
            mime_type=mime_type,
            audio_bytes=audio_bytes,
            language_hint=language_hint,
            prompt=prompt,
        )
    except TranscriptionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    outcome = outcomes[-1] if outcomes else None
    return {
        "transcript_text": transcription["transcript_text"],
        "confidence": max(0.0, min(1.0, float(transcription.get("confidence", 0.8)))),
        "segments": transcription.get("segments", []),
        "turn": outcome.as_envelope() if outcome else None,
        "speak": [request.as_dict() for request in session.playback.drain()],
    }
