from typing import Optional

from pydantic import BaseModel, Field


class SendNotificationRequest(BaseModel):
    token: str = Field(..., max_length=512)
    title: str = Field(..., max_length=200)
    body: str = Field(..., max_length=2000)
    data: Optional[dict[str, str]] = None


class SendNotificationOut(BaseModel):
    name: str


class BroadcastNotificationRequest(BaseModel):
    user_ids: list[str] = Field(..., min_length=1, max_length=5000)
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=2000)
    data: Optional[dict[str, str]] = None


class BroadcastNotificationOut(BaseModel):
    recipients: int
    sent: int
    dropped: int
    message_ids: list[str]


class FcmTokenUpdateRequest(BaseModel):
    fcm_token: str = Field(..., min_length=1, max_length=512)
    platform: Optional[str] = Field(default=None, max_length=16)


class FcmTokenOut(BaseModel):
    message: str
