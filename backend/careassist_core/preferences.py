from __future__ import annotations

from typing import Any

from . import locales
from .interfaces import PreferenceStore
from .models import ConversationState

WORKING_LANGUAGE_KEY = "working_language"
_TOGGLE_KEYS = (
    "auto_translate",
    "symptom_model_enabled",
    "voice_input_enabled",
    "speech_output_enabled",
)
CREDENTIAL_KEYS = {"google_translate_api_key", "openai_api_key"}


class PreferenceError(Exception):
    pass


class ConversationSettings:
    """Reads and writes ConversationState through a preference store."""

    def __init__(self, store: PreferenceStore, *, default_language: str = locales.DEFAULT_LANGUAGE) -> None:
        self.store = store
        self.default_language = locales.primary_language(default_language) or locales.DEFAULT_LANGUAGE

    def load(self) -> ConversationState:
        defaults = ConversationState(working_language=self.default_language)
        language = self.store.get(WORKING_LANGUAGE_KEY)
        state = ConversationState(
            working_language=language if isinstance(language, str) and language else defaults.working_language,
        )
        for key in _TOGGLE_KEYS:
            value = self.store.get(key)
            setattr(state, key, value if isinstance(value, bool) else getattr(defaults, key))
        return state

    def update(self, **changes: Any) -> ConversationState:
        for key, value in changes.items():
            if value is None:
                continue
            if key == WORKING_LANGUAGE_KEY:
                if not isinstance(value, str) or not locales.is_supported_language(value):
                    raise PreferenceError(f"Unsupported language: {value}")
                self.store.set(WORKING_LANGUAGE_KEY, locales.primary_language(value))
            elif key in _TOGGLE_KEYS:
                if not isinstance(value, bool):
                    raise PreferenceError(f"Preference '{key}' must be a boolean.")
                self.store.set(key, value)
            else:
                raise PreferenceError(f"Unknown preference: {key}")
        return self.load()

    def set_credential(self, key: str, value: str) -> None:
        if key not in CREDENTIAL_KEYS:
            raise PreferenceError(f"Unknown credential: {key}")
        cleaned = (value or "").strip()
        if not cleaned:
            raise PreferenceError("Please enter a valid API key")
        self.store.set(key, cleaned)

    def credential(self, key: str) -> str | None:
        value = self.store.get(key)
        return value.strip() if isinstance(value, str) and value.strip() else None
