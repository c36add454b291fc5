"""
Birdwatch - Pydantic Models
Wire formats for Gmail push notifications delivered through Pub/Sub.
"""

from typing import Optional, Dict
from pydantic import BaseModel, Field


class GmailNotification(BaseModel):
    """Decoded body of a Gmail push notification."""
    emailAddress: str = Field(..., description="Mailbox that received new mail")
    historyId: Optional[int] = Field(default=None, description="Mailbox history ID at notification time")


class PubSubMessage(BaseModel):
    """A Pub/Sub message as delivered to a push endpoint."""
    data: str = Field(default="", description="Base64-encoded GmailNotification JSON")
    attributes: Dict[str, str] = Field(default_factory=dict)
    messageId: Optional[str] = None
    publishTime: Optional[str] = None


class PubSubPushEnvelope(BaseModel):
    """Request body of a Pub/Sub push subscription."""
    message: PubSubMessage = Field(default_factory=PubSubMessage)
    subscription: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check payload."""
    status: str
    service: str
    oauth_configured: bool
    timestamp: str
