"""
Domain subpackage for the email outreach feature.
"""

from .errors import (
    GenerationError,
    MalformedRecordError,
    OutreachError,
    PersistenceWarning,
    TransportError,
    ValidationError,
)
from .models import (
    Contact,
    ConversationStats,
    ConversationSummary,
    ConversationThread,
    EligibilityWindow,
    EmailRecord,
    EmailUsage,
    ExperienceSnapshot,
    GenerationRequest,
    GenerationResponse,
    ProfileCompletionGate,
    ProfileSnapshot,
)

__all__ = [
    "Contact",
    "ConversationStats",
    "ConversationSummary",
    "ConversationThread",
    "EligibilityWindow",
    "EmailRecord",
    "EmailUsage",
    "ExperienceSnapshot",
    "GenerationError",
    "GenerationRequest",
    "GenerationResponse",
    "MalformedRecordError",
    "OutreachError",
    "PersistenceWarning",
    "ProfileCompletionGate",
    "ProfileSnapshot",
    "TransportError",
    "ValidationError",
]
