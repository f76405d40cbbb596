from typing import List, Optional

from pydantic import BaseModel


class KnowledgeSyncRequest(BaseModel):
    path: Optional[str] = None


class KnowledgeSyncResponse(BaseModel):
    created: int
    updated: int
    unchanged: int
    embedding_failed: int


class EmbedMissingResponse(BaseModel):
    embedded: int
    failed: int


class RuleValidationError(BaseModel):
    rule_id: str
    error: str


class RuleValidationResponse(BaseModel):
    valid: int
    invalid: List[RuleValidationError]


class AlertTestResponse(BaseModel):
    success: bool
    message: str
