import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from tiaen.config import Settings, get_settings
from tiaen.database import get_db
from tiaen.logging_config import get_logger
from tiaen.schemas.admin import (
    AlertTestResponse,
    EmbedMissingResponse,
    KnowledgeSyncRequest,
    KnowledgeSyncResponse,
    RuleValidationError,
    RuleValidationResponse,
)
from tiaen.services.alert_service import send_alert
from tiaen.services.automation_service import validate_active_rules
from tiaen.services.knowledge_loader import KnowledgeSeedError, embed_missing, load_seed_file, sync_knowledge
from tiaen.services.llm.base import ModelProvider
from tiaen.services.llm.openai_provider import OpenAIProvider
from tiaen.services.store import SqlStore, StoreError

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


def get_model_provider(config: Settings = Depends(get_settings)) -> ModelProvider:
    return OpenAIProvider(
        api_key=config.openai_api_key,
        default_model=config.completion_model,
        embedding_model=config.embedding_model,
        base_url=config.openai_base_url,
        timeout_seconds=config.model_timeout_seconds,
    )


def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    config: Settings = Depends(get_settings),
) -> None:
    expected = config.admin_token
    if not expected:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="ADMIN_TOKEN not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


@router.post(
    "/knowledge/sync",
    response_model=KnowledgeSyncResponse,
    dependencies=[Depends(require_admin_token)],
)
def knowledge_sync(
    data: Optional[KnowledgeSyncRequest] = None,
    db: Session = Depends(get_db),
    model: ModelProvider = Depends(get_model_provider),
    config: Settings = Depends(get_settings),
):
    path = (data.path if data else None) or config.knowledge_seed_path
    if not path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No knowledge seed path given")
    try:
        seeds = load_seed_file(path)
    except KnowledgeSeedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return sync_knowledge(db, model, seeds)


@router.post(
    "/knowledge/embed-missing",
    response_model=EmbedMissingResponse,
    dependencies=[Depends(require_admin_token)],
)
def knowledge_embed_missing(
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    model: ModelProvider = Depends(get_model_provider),
):
    return embed_missing(db, model, limit=limit)


@router.get(
    "/automation-rules/validate",
    response_model=RuleValidationResponse,
    dependencies=[Depends(require_admin_token)],
)
def automation_rules_validate(db: Session = Depends(get_db)):
    try:
        valid, errors = validate_active_rules(SqlStore(db))
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return RuleValidationResponse(
        valid=valid,
        invalid=[RuleValidationError(rule_id=str(e.rule_id), error=str(e)) for e in errors],
    )


@router.post(
    "/alerts/test",
    response_model=AlertTestResponse,
    dependencies=[Depends(require_admin_token)],
)
def alerts_test():
    sent = send_alert("INFO", "Alerts test", {"source": "admin.alerts.test"})
    if sent:
        return AlertTestResponse(success=True, message="Alert sent")
    return AlertTestResponse(success=False, message="Alert not sent (check ALERT_BOT_TOKEN/ALERT_CHAT_ID)")
