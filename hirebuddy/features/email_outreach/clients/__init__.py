"""
Collaborator clients: the hosted email API and the OpenAI draft generator.
"""

from .generation import EmailGenerationError, EmailGenerationService, email_generation_service
from .mail_transport import (
    FollowUpReceipt,
    MailTransportClient,
    MailTransportClientError,
    SendReceipt,
    mail_transport_client,
)

__all__ = [
    "EmailGenerationError",
    "EmailGenerationService",
    "FollowUpReceipt",
    "MailTransportClient",
    "MailTransportClientError",
    "SendReceipt",
    "email_generation_service",
    "mail_transport_client",
]
