"""Websocket message envelopes."""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ServerMessage(BaseModel):
    """Outbound envelope; ``timestamp`` defaults to the moment of creation."""

    type: str
    data: Any = None
    timestamp: datetime = Field(default_factory=_utcnow)


class ClientMessage(BaseModel):
    """Inbound envelope. Unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    type: str
    data: Any = None


class ActionSpec(BaseModel):
    action: str


class BatchActionCommand(BaseModel):
    """``data`` of an inbound ``batch_action`` message."""

    model_config = ConfigDict(populate_by_name=True)

    batch_id: uuid.UUID = Field(..., alias="batchId")
    action: ActionSpec
