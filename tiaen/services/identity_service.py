from datetime import datetime, timezone
from typing import Optional

from tiaen.logging_config import get_logger
from tiaen.models import Contact
from tiaen.services.event_normalizer import InboundEvent
from tiaen.services.result import ErrorKind, Result
from tiaen.services.store import Store, StoreError

logger = get_logger("identity_service")


def display_name_for(phone: str, push_name: Optional[str] = None) -> str:
    """Provider profile name, or 'Contact ' + last four digits of the phone."""
    if push_name and push_name.strip():
        return push_name.strip()
    digits = "".join(ch for ch in phone if ch.isdigit()) or phone
    return f"Contact {digits[-4:]}"


def resolve_contact(store: Store, event: InboundEvent, channel: str = "whatsapp") -> Result[Contact]:
    """Find the contact for the event's customer phone, creating it if absent."""
    phone = event.contact_phone
    try:
        contact = store.get_contact_by_phone(phone)
    except StoreError as e:
        return Result.failure(f"Contact lookup failed: {e}", ErrorKind.TRANSIENT_STORE_ERROR)

    if contact is None:
        try:
            contact = store.create_contact(
                phone=phone,
                name=display_name_for(phone, None if event.is_from_bot else event.push_name),
                profile_picture=event.profile_picture_url,
                tags=[channel],
                notes=f"Contact created automatically from a {channel} message",
            )
        except StoreError as e:
            return Result.failure(f"Contact create failed: {e}", ErrorKind.TRANSIENT_STORE_ERROR)
        logger.info("Contact created", extra={"context": {"contact_id": str(contact.id), "channel": channel}})
        return Result.success(contact)

    if event.is_from_bot:
        # Our own echo says nothing about the customer's presence.
        return Result.success(contact)

    now = datetime.now(timezone.utc)
    try:
        store.update_contact(contact.id, is_online=True, last_seen=now)
        contact.is_online = True
        contact.last_seen = now
    except StoreError as e:
        logger.warning(
            "Contact presence update failed",
            extra={"context": {"contact_id": str(contact.id), "error": str(e)}},
        )
    return Result.success(contact)
