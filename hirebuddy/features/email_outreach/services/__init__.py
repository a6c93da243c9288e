"""
Service layer for the email outreach feature.
"""

from .orchestrator import (
    AttemptState,
    Draft,
    OutreachOrchestrator,
    SendOutcome,
    SenderContext,
    outreach_orchestrator,
)
from .usage import EmailUsageService, email_usage_service

__all__ = [
    "AttemptState",
    "Draft",
    "EmailUsageService",
    "OutreachOrchestrator",
    "SendOutcome",
    "SenderContext",
    "email_usage_service",
    "outreach_orchestrator",
]
