"""
Conversation read side: boundary normalization, reconciliation and the
service that loads threads and contact lists.
"""

from .reconciler import reconcile
from .service import ConversationFeed, ConversationService, conversation_service, synthetic_contact

__all__ = [
    "ConversationFeed",
    "ConversationService",
    "conversation_service",
    "reconcile",
    "synthetic_contact",
]
