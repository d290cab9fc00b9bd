from .catalog import Catalog, CatalogError, default_catalog
from .composer import ComposedResponse, ResponseComposer
from .conversation import ConversationLog, NoticeBoard
from .extractor import SymptomExtractor
from .hooks import HookRunner
from .interfaces import COMPLETION_APOLOGY, is_completion_failure
from .lifecycle import TurnLifecycle, TurnLifecycleError
from .matcher import MATCH_THRESHOLD, ConditionMatcher
from .models import (
    TURN_STATES,
    TURN_STATUSES,
    CaptureEvent,
    Condition,
    ConversationState,
    MatchResult,
    Message,
    Notice,
    Symptom,
    TurnOutcome,
)
from .orchestrator import ConversationOrchestrator
from .preferences import ConversationSettings, PreferenceError

__all__ = [
    "COMPLETION_APOLOGY",
    "MATCH_THRESHOLD",
    "TURN_STATES",
    "TURN_STATUSES",
    "CaptureEvent",
    "Catalog",
    "CatalogError",
    "ComposedResponse",
    "Condition",
    "ConditionMatcher",
    "ConversationLog",
    "ConversationOrchestrator",
    "ConversationSettings",
    "ConversationState",
    "HookRunner",
    "MatchResult",
    "Message",
    "Notice",
    "NoticeBoard",
    "PreferenceError",
    "ResponseComposer",
    "Symptom",
    "SymptomExtractor",
    "TurnLifecycle",
    "TurnLifecycleError",
    "TurnOutcome",
    "default_catalog",
    "is_completion_failure",
]
