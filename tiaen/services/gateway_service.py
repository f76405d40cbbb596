"""Outbound messaging gateway."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from tiaen.logging_config import get_logger
from tiaen.services.alert_service import alert_critical

logger = get_logger("gateway_service")


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


class Gateway(ABC):
    @abstractmethod
    def send_text(self, instance_id: Optional[str], phone: str, text: str) -> SendResult:
        """Send a text message. Never raises; failures come back as SendResult(success=False)."""
        pass


class EvolutionGateway(Gateway):
    """Evolution API: POST {base}/message/sendText/{instance} with {number, text}."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        default_instance: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_instance = default_instance
        self.timeout_seconds = timeout_seconds

    def _fail(self, phone: str, error: str) -> SendResult:
        logger.error("WhatsApp send failed", extra={"context": {"phone": phone, "error": error}})
        alert_critical("WhatsApp send failed", {"phone": phone, "error": error})
        return SendResult(success=False, error=error)

    def send_text(self, instance_id: Optional[str], phone: str, text: str) -> SendResult:
        instance = instance_id or self.default_instance
        if not self.api_key:
            return self._fail(phone, "missing_evolution_api_key")
        if not instance:
            return self._fail(phone, "missing_instance_id")
        if not phone or not text:
            logger.warning(f"send_text: missing phone or text for instance={instance}")
            return SendResult(success=False, error="missing_phone_or_text")

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    f"{self.base_url}/message/sendText/{instance}",
                    headers={"apikey": self.api_key, "Content-Type": "application/json"},
                    json={"number": phone, "text": text},
                )
        except httpx.HTTPError as e:
            return self._fail(phone, f"{type(e).__name__}: {e}")

        logger.info(
            "Evolution response",
            extra={"context": {"status": response.status_code, "instance": instance, "phone": phone}},
        )
        if response.status_code not in (200, 201):
            return self._fail(phone, f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError:
            data = None
        message_id = (data.get("key") or {}).get("id") if isinstance(data, dict) else None
        return SendResult(success=True, message_id=message_id)
