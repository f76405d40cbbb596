from typing import Optional

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    success: bool
    error: Optional[str] = None
