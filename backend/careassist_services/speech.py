from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from careassist_core.interfaces import CaptureListener
from careassist_core.models import CaptureEvent

from .http_utils import provider_error_message

_OPENAI_API_BASE = os.getenv("OPENAI_API_BASE_URL", "https://api.openai.com/v1").rstrip("/")

Transcriber = Callable[..., Awaitable[dict[str, Any]]]


class TranscriptionError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def estimate_transcription_confidence(segments: list[dict[str, Any]]) -> float:
    if not segments:
        return 0.8
    scores: list[float] = []
    for segment in segments:
        local_scores: list[float] = []
        avg_logprob = segment.get("avg_logprob")
        if isinstance(avg_logprob, (int, float)):
            local_scores.append(max(0.0, min(1.0, 1.0 + (float(avg_logprob) / 2.5))))
        no_speech_prob = segment.get("no_speech_prob")
        if isinstance(no_speech_prob, (int, float)):
            local_scores.append(max(0.0, min(1.0, 1.0 - float(no_speech_prob))))
        if local_scores:
            scores.append(sum(local_scores) / len(local_scores))
    if not scores:
        return 0.8
    return round(max(0.0, min(1.0, sum(scores) / len(scores))), 3)


async def openai_whisper_transcribe(
    *,
    api_key: str | None,
    file_name: str,
    mime_type: str,
    audio_bytes: bytes,
    language_hint: str | None = None,
    prompt: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    if not api_key:
        raise TranscriptionError("not-allowed", "OpenAI API key is not configured.", status_code=503)
    model = (os.getenv("CAREASSIST_WHISPER_MODEL") or "whisper-1").strip()
    payload: dict[str, Any] = {"model": model, "response_format": "verbose_json"}
    if language_hint:
        payload["language"] = language_hint.strip()
    if prompt:
        payload["prompt"] = prompt.strip()

    files = {"file": (file_name, audio_bytes, mime_type or "application/octet-stream")}
    headers = {"Authorization": f"Bearer {api_key}"}

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0), transport=transport) as client:
            response = await client.post(
                f"{_OPENAI_API_BASE}/audio/transcriptions",
                headers=headers,
                data=payload,
                files=files,
            )
    except httpx.TimeoutException as exc:
        raise TranscriptionError("network", "Transcription provider timed out.", status_code=504) from exc
    except httpx.HTTPError as exc:
        raise TranscriptionError("network", "Failed to reach transcription provider.", status_code=502) from exc

    if response.status_code >= 400:
        provider_error = provider_error_message(response)
        if response.status_code == 401:
            raise TranscriptionError("not-allowed", "OpenAI API key was rejected by provider.", status_code=503)
        if response.status_code == 429:
            raise TranscriptionError(
                "rate-limited", "Transcription provider is rate-limited. Retry shortly.", status_code=429
            )
        raise TranscriptionError("provider-error", f"Transcription failed: {provider_error}", status_code=502)

    try:
        payload_json = response.json()
    except json.JSONDecodeError as exc:
        raise TranscriptionError("provider-error", "Transcription provider returned invalid JSON.") from exc

    transcript_text = str(payload_json.get("text") or "").strip()
    if not transcript_text:
        raise TranscriptionError("no-speech", "No speech was detected in the recording.", status_code=422)
    raw_segments = payload_json.get("segments")
    segments = [item for item in raw_segments if isinstance(item, dict)] if isinstance(raw_segments, list) else []
    return {
        "transcript_text": transcript_text,
        "confidence": estimate_transcription_confidence(segments),
        "segments": segments,
    }


class WhisperSpeechCapture:
    """Speech capture over uploaded audio.

    Segment text is replayed as incremental transcript events before the final
    transcript, so listeners see the same event sequence a live recognizer
    would produce.
    """

    def __init__(self, transcriber: Transcriber) -> None:
        self._transcriber = transcriber
        self._listeners: list[CaptureListener] = []

    def subscribe(self, listener: CaptureListener) -> None:
        self._listeners.append(listener)

    async def capture(
        self,
        *,
        file_name: str,
        mime_type: str,
        audio_bytes: bytes,
        language_hint: str | None = None,
        prompt: str | None = None,
    ) -> dict[str, Any]:
        try:
            result = await self._transcriber(
                file_name=file_name,
                mime_type=mime_type,
                audio_bytes=audio_bytes,
                language_hint=language_hint,
                prompt=prompt,
            )
        except TranscriptionError as exc:
            await self._emit(CaptureEvent(kind="error", code=exc.code))
            raise

        partial = ""
        for segment in result.get("segments", []):
            text = str(segment.get("text") or "").strip()
            if not text:
                continue
            partial = f"{partial} {text}".strip()
            await self._emit(CaptureEvent(kind="partial", transcript=partial))
        await self._emit(CaptureEvent(kind="final", transcript=str(result["transcript_text"])))
        return result

    async def _emit(self, event: CaptureEvent) -> None:
        for listener in self._listeners:
            await listener(event)


@dataclass
class SpeakRequest:
    utterance_id: str
    text: str
    language_tag: str
    cancelled: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {"utterance_id": self.utterance_id, "text": self.text, "language_tag": self.language_tag}


class SSESpeechPlayback:
    """Playback that hands utterances to the browser as `speak` stream events."""

    def __init__(self) -> None:
        self.supported = True
        self._pending: list[SpeakRequest] = []
        self._in_flight: SpeakRequest | None = None
        self._listeners: list[Callable[[str], None]] = []

    def speak(self, text: str, language_tag: str) -> str:
        request = SpeakRequest(utterance_id=f"utt_{uuid.uuid4().hex[:16]}", text=text, language_tag=language_tag)
        self._pending.append(request)
        self._in_flight = request
        return request.utterance_id

    def cancel(self) -> None:
        if self._in_flight is not None:
            self._in_flight.cancelled = True
            self._in_flight = None

    def drain(self) -> list[SpeakRequest]:
        pending = [request for request in self._pending if not request.cancelled]
        self._pending = []
        return pending

    def on_complete(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def mark_complete(self, utterance_id: str) -> bool:
        if self._in_flight is None or self._in_flight.utterance_id != utterance_id:
            return False
        self._in_flight = None
        for listener in self._listeners:
            listener(utterance_id)
        logger.debug("playback complete: {}", utterance_id)
        return True
