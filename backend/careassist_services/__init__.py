from .completion import CompletionService, chat_provider_candidates
from .speech import (
    SpeakRequest,
    SSESpeechPlayback,
    TranscriptionError,
    WhisperSpeechCapture,
    openai_whisper_transcribe,
)
from .translation import GoogleTranslateService

__all__ = [
    "CompletionService",
    "GoogleTranslateService",
    "SSESpeechPlayback",
    "SpeakRequest",
    "TranscriptionError",
    "WhisperSpeechCapture",
    "chat_provider_candidates",
    "openai_whisper_transcribe",
]
