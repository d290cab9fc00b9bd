"""Localized copy keyed by language code.

Lookups walk a fallback chain (``pt-br`` -> ``pt`` -> default language) so a
missing translation never breaks a turn; it just renders in the default.
"""

from __future__ import annotations

from typing import Any

DEFAULT_LANGUAGE = "en"

SUPPORTED_LANGUAGES: list[dict[str, str]] = [
    {"code": "en", "name": "English"},
    {"code": "es", "name": "Spanish"},
    {"code": "fr", "name": "French"},
    {"code": "de", "name": "German"},
    {"code": "zh", "name": "Chinese"},
    {"code": "ja", "name": "Japanese"},
    {"code": "ko", "name": "Korean"},
    {"code": "ar", "name": "Arabic"},
    {"code": "ru", "name": "Russian"},
    {"code": "hi", "name": "Hindi"},
    {"code": "pt", "name": "Portuguese"},
    {"code": "it", "name": "Italian"},
]

_SPEECH_TAGS = {
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "de": "de-DE",
    "zh": "zh-CN",
    "ja": "ja-JP",
    "ko": "ko-KR",
    "ar": "ar-SA",
    "ru": "ru-RU",
    "hi": "hi-IN",
    "pt": "pt-BR",
    "it": "it-IT",
}

LOCALE_RESOURCES: dict[str, dict[str, str]] = {
    "en": {
        "greeting": "Hello! I'm your AI medical assistant. How can I help you today?",
        "disclaimer": (
            "This AI assistant provides general information only and is not a substitute "
            "for professional medical advice, diagnosis, or treatment."
        ),
        "notice.completion_unavailable": (
            "The assistant could not reach its answer service. Your message was kept; please try again shortly."
        ),
        "notice.voice_input_unsupported": "Voice input is not supported here. You can still type your message.",
        "notice.speech_output_unsupported": "Spoken replies are not supported here. Replies will be shown as text.",
        "notice.capture_error": "Voice capture failed ({code}). Please try again.",
        "suggestion.language_switch": "It looks like you are writing in {language_name}. Switch your working language?",
        "compose.condition": "Based on the symptoms you've described, you may have {name}. {description} ",
        "compose.recommendations": "Recommendations: {recommendations}. ",
        "compose.severity_elevated": (
            "Please note that this condition is of {severity} severity. If symptoms worsen or persist, "
            "please consult a healthcare professional."
        ),
        "compose.severity_low": (
            "This condition is generally of low severity, but if symptoms persist for more than a few days, "
            "consider seeking medical advice."
        ),
        "compose.symptoms_only": (
            "I've identified that you're experiencing the following symptoms: {symptoms}. "
            "Without more information, I can't determine a specific condition. These symptoms could be related "
            "to several different issues. I recommend monitoring your symptoms and consulting with a healthcare "
            "professional if they worsen or persist. Would you like to provide more details about how you're feeling?"
        ),
        "compose.no_symptoms": (
            "I couldn't identify specific symptoms from your description. "
            "Could you please provide more details about how you're feeling?"
        ),
        "compose.supplement": "Additional information: {text}",
        "prompt.condition": (
            "Based on my symptoms, I may have {name}. Briefly explain what else I should know about {name} "
            "and when I should see a doctor."
        ),
        "prompt.symptoms": (
            "I'm experiencing these symptoms: {symptoms}. What could be causing them, "
            "and what should I watch out for?"
        ),
    },
    "es": {
        "greeting": "¡Hola! Soy tu asistente médico de IA. ¿En qué puedo ayudarte hoy?",
        "disclaimer": (
            "Este asistente de IA ofrece solo información general y no sustituye el consejo, "
            "diagnóstico o tratamiento médico profesional."
        ),
        "notice.completion_unavailable": (
            "El asistente no pudo contactar su servicio de respuestas. Tu mensaje se guardó; inténtalo de nuevo en breve."
        ),
        "notice.voice_input_unsupported": "La entrada de voz no está disponible aquí. Puedes escribir tu mensaje.",
        "notice.speech_output_unsupported": "Las respuestas habladas no están disponibles aquí. Se mostrarán como texto.",
        "notice.capture_error": "La captura de voz falló ({code}). Inténtalo de nuevo.",
        "suggestion.language_switch": "Parece que escribes en {language_name}. ¿Cambiar tu idioma de trabajo?",
    },
    "fr": {
        "greeting": "Bonjour ! Je suis votre assistant médical IA. Comment puis-je vous aider aujourd'hui ?",
        "disclaimer": (
            "Cet assistant IA fournit uniquement des informations générales et ne remplace pas un avis, "
            "un diagnostic ou un traitement médical professionnel."
        ),
        "notice.completion_unavailable": (
            "L'assistant n'a pas pu joindre son service de réponse. Votre message est conservé ; réessayez bientôt."
        ),
        "notice.voice_input_unsupported": "La saisie vocale n'est pas prise en charge ici. Vous pouvez écrire votre message.",
        "notice.speech_output_unsupported": "Les réponses vocales ne sont pas prises en charge ici. Elles s'afficheront en texte.",
        "notice.capture_error": "La capture vocale a échoué ({code}). Veuillez réessayer.",
        "suggestion.language_switch": "Il semble que vous écriviez en {language_name}. Changer votre langue de travail ?",
    },
    "de": {
        "greeting": "Hallo! Ich bin Ihr KI-Medizinassistent. Wie kann ich Ihnen heute helfen?",
        "disclaimer": (
            "Dieser KI-Assistent bietet nur allgemeine Informationen und ersetzt keine professionelle "
            "medizinische Beratung, Diagnose oder Behandlung."
        ),
        "notice.completion_unavailable": (
            "Der Assistent konnte seinen Antwortdienst nicht erreichen. Ihre Nachricht wurde gespeichert; "
            "bitte versuchen Sie es gleich erneut."
        ),
        "notice.voice_input_unsupported": "Spracheingabe wird hier nicht unterstützt. Sie können Ihre Nachricht tippen.",
        "notice.speech_output_unsupported": "Gesprochene Antworten werden hier nicht unterstützt. Antworten erscheinen als Text.",
        "notice.capture_error": "Die Sprachaufnahme ist fehlgeschlagen ({code}). Bitte erneut versuchen.",
        "suggestion.language_switch": "Sie schreiben anscheinend auf {language_name}. Arbeitssprache wechseln?",
    },
    "pt": {
        "greeting": "Olá! Sou seu assistente médico de IA. Como posso ajudar hoje?",
        "disclaimer": (
            "Este assistente de IA fornece apenas informações gerais e não substitui aconselhamento, "
            "diagnóstico ou tratamento médico profissional."
        ),
        "notice.completion_unavailable": (
            "O assistente não conseguiu acessar o serviço de respostas. Sua mensagem foi mantida; tente novamente em breve."
        ),
        "notice.voice_input_unsupported": "A entrada de voz não é suportada aqui. Você ainda pode digitar sua mensagem.",
        "notice.speech_output_unsupported": "Respostas faladas não são suportadas aqui. As respostas aparecerão como texto.",
        "notice.capture_error": "A captura de voz falhou ({code}). Tente novamente.",
        "suggestion.language_switch": "Parece que você está escrevendo em {language_name}. Mudar seu idioma de trabalho?",
    },
    "hi": {
        "greeting": "नमस्ते! मैं आपका एआई चिकित्सा सहायक हूँ। आज मैं आपकी कैसे मदद कर सकता हूँ?",
        "disclaimer": (
            "यह एआई सहायक केवल सामान्य जानकारी देता है और पेशेवर चिकित्सा सलाह, निदान या उपचार का विकल्प नहीं है।"
        ),
        "notice.completion_unavailable": "सहायक अपनी उत्तर सेवा तक नहीं पहुँच सका। आपका संदेश सुरक्षित है; कृपया थोड़ी देर में फिर प्रयास करें।",
        "notice.voice_input_unsupported": "यहाँ वॉयस इनपुट समर्थित नहीं है। आप अपना संदेश टाइप कर सकते हैं।",
        "notice.speech_output_unsupported": "यहाँ बोले गए उत्तर समर्थित नहीं हैं। उत्तर टेक्स्ट के रूप में दिखेंगे।",
        "notice.capture_error": "आवाज़ कैप्चर विफल रहा ({code})। कृपया फिर प्रयास करें।",
        "suggestion.language_switch": "लगता है आप {language_name} में लिख रहे हैं। क्या अपनी कार्य भाषा बदलें?",
    },
}


def normalize_language(code: str | None) -> str:
    return (code or "").strip().lower().replace("_", "-")


def primary_language(code: str | None) -> str:
    return normalize_language(code).split("-")[0]


def fallback_chain(code: str | None) -> list[str]:
    normalized = normalize_language(code)
    chain: list[str] = []
    for candidate in (normalized, primary_language(normalized), DEFAULT_LANGUAGE):
        if candidate and candidate not in chain:
            chain.append(candidate)
    return chain


def resolve(key: str, language: str | None = None, **values: Any) -> str:
    for candidate in fallback_chain(language):
        template = LOCALE_RESOURCES.get(candidate, {}).get(key)
        if template is not None:
            return template.format(**values) if values else template
    raise KeyError(f"Missing locale resource: {key}")


def is_supported_language(code: str | None) -> bool:
    primary = primary_language(code)
    return any(language["code"] == primary for language in SUPPORTED_LANGUAGES)


def language_name(code: str | None) -> str:
    primary = primary_language(code)
    for language in SUPPORTED_LANGUAGES:
        if language["code"] == primary:
            return language["name"]
    return primary or DEFAULT_LANGUAGE


def speech_tag(code: str | None) -> str:
    normalized = normalize_language(code)
    if "-" in normalized:
        primary, region = normalized.split("-", 1)
        return f"{primary}-{region.upper()}"
    return _SPEECH_TAGS.get(normalized, normalized or _SPEECH_TAGS[DEFAULT_LANGUAGE])
