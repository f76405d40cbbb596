"""Gateway instance state sync for status, qr and disconnect events."""

from datetime import datetime, timezone
from typing import Optional

from tiaen.logging_config import get_logger
from tiaen.services.event_normalizer import EventKind, IgnoredEvent
from tiaen.services.store import Store, StoreError

logger = get_logger("instance_service")

CONNECTION_STATES = {
    "open": "connected",
    "connected": "connected",
    "connecting": "connecting",
    "close": "disconnected",
    "closed": "disconnected",
    "disconnected": "disconnected",
}


def map_connection_status(state: Optional[str]) -> str:
    return CONNECTION_STATES.get((state or "").strip().lower(), "error")


def _qr_code(data: dict) -> Optional[str]:
    if data.get("qrCode"):
        return data["qrCode"]
    qrcode = data.get("qrcode")
    if isinstance(qrcode, dict):
        return qrcode.get("base64") or qrcode.get("code")
    return qrcode


def apply_instance_event(store: Store, event: IgnoredEvent) -> bool:
    """Update the GatewayInstance row for a state event. Returns True when a row changed."""
    if not event.instance_id:
        logger.warning("Instance event without instance id", extra={"context": {"kind": event.kind.value}})
        return False

    data = event.data or {}
    if event.kind == EventKind.STATUS:
        status = map_connection_status(data.get("status") or data.get("state"))
        fields = {"status": status}
        if status == "connected":
            fields["last_connection"] = datetime.now(timezone.utc)
    elif event.kind == EventKind.QR:
        fields = {"qr_code": _qr_code(data)}
    elif event.kind == EventKind.DISCONNECT:
        fields = {"status": "disconnected", "qr_code": None}
    else:
        logger.info("Ignoring webhook event", extra={"context": {"reason": event.reason}})
        return False

    try:
        updated = store.update_gateway_instance(event.instance_id, **fields)
    except StoreError as e:
        logger.warning(
            "Instance state update failed",
            extra={"context": {"instance_id": event.instance_id, "error": str(e)}},
        )
        return False

    if not updated:
        logger.warning("Unknown gateway instance", extra={"context": {"instance_id": event.instance_id}})
    else:
        logger.info(
            "Gateway instance updated",
            extra={"context": {"instance_id": event.instance_id, "kind": event.kind.value}},
        )
    return updated
