import hmac
import json
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse

from tiaen.config import Settings, get_settings, settings
from tiaen.database import session_scope
from tiaen.logging_config import get_logger
from tiaen.schemas.webhook import WebhookResponse
from tiaen.services.alert_service import alert_warning
from tiaen.services.pipeline import PipelineCoordinator
from tiaen.services.store import SqlStore

logger = get_logger("webhook")

router = APIRouter()


def run_pipeline(payload: dict) -> None:
    """Background unit of work for one webhook call."""
    try:
        with session_scope() as db:
            coordinator = PipelineCoordinator.from_settings(SqlStore(db), settings)
            outcome = coordinator.handle(payload)
    except Exception as e:
        logger.exception("Webhook processing failed", extra={"context": {"error": str(e)}})
        return

    logger.info(
        "Webhook processed",
        extra={
            "context": {
                "state": outcome.state.value,
                "conversation_id": str(outcome.conversation_id) if outcome.conversation_id else None,
                "claimed": outcome.claimed,
                "errors": outcome.errors,
            }
        },
    )


def get_pipeline_runner() -> Callable[[dict], None]:
    return run_pipeline


def _get_request_webhook_secret(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    header_secret = request.headers.get("X-Webhook-Secret")
    if header_secret:
        return header_secret.strip()
    query_secret = request.query_params.get("webhook_secret")
    if query_secret:
        return query_secret.strip()
    return None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=WebhookResponse(success=False, error=message).model_dump(exclude_none=True),
    )


@router.post("/webhook", response_model=WebhookResponse, response_model_exclude_none=True)
async def handle_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    config: Settings = Depends(get_settings),
    runner: Callable[[dict], None] = Depends(get_pipeline_runner),
):
    """Acknowledge the gateway and process the event in the background."""
    expected_secret = (config.webhook_secret or "").strip()
    provided_secret = _get_request_webhook_secret(request)
    if expected_secret:
        if not provided_secret or not hmac.compare_digest(provided_secret, expected_secret):
            logger.warning("Webhook rejected: invalid secret")
            return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    elif not provided_secret:
        alert_warning("Webhook secret not configured", {"path": "/webhook"})

    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Webhook body is not valid JSON", extra={"context": {"error": str(e)}})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process webhook")
    if not isinstance(payload, dict):
        logger.warning("Webhook body is not a JSON object")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process webhook")

    logger.info(
        "Webhook received",
        extra={"context": {"event": payload.get("event"), "instance_id": payload.get("instanceId")}},
    )
    background_tasks.add_task(runner, payload)
    return WebhookResponse(success=True)


@router.get("/webhook")
async def handle_webhook_probe():
    """Health probe for gateway UI checks; real webhooks must use POST."""
    return {"ok": True, "message": "Use POST with JSON payload"}
