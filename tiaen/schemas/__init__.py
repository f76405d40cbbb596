from tiaen.schemas.admin import (
    AlertTestResponse,
    EmbedMissingResponse,
    KnowledgeSyncRequest,
    KnowledgeSyncResponse,
    RuleValidationResponse,
)
from tiaen.schemas.webhook import WebhookResponse

__all__ = [
    "AlertTestResponse",
    "EmbedMissingResponse",
    "KnowledgeSyncRequest",
    "KnowledgeSyncResponse",
    "RuleValidationResponse",
    "WebhookResponse",
]
