from functools import lru_cache

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.dependencies import CurrentUser, get_current_user, require_admin
from app.schemas.notifications import (
    BroadcastNotificationOut,
    BroadcastNotificationRequest,
    FcmTokenOut,
    FcmTokenUpdateRequest,
    SendNotificationOut,
    SendNotificationRequest,
)
from app.services.notifications import (
    NotificationDispatcher,
    load_service_account,
    register_device_token,
    resolve_device_tokens,
)
from app.utils.audit import audit

router = APIRouter()
settings = get_settings()


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        load_service_account(settings.firebase_service_account),
        concurrency=settings.notification_concurrency,
        timeout_seconds=settings.notification_timeout_seconds,
    )


@router.post("/send", response_model=SendNotificationOut)
async def send_notification(
    payload: SendNotificationRequest,
    user: CurrentUser = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    name = await dispatcher.send_single(payload.token, payload.title, payload.body, payload.data)
    return {"name": name}


@router.post("/broadcast", response_model=BroadcastNotificationOut)
async def broadcast_notification(
    payload: BroadcastNotificationRequest,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    tokens = resolve_device_tokens(db, payload.user_ids)
    result = await dispatcher.dispatch(tokens, payload.title, payload.body, payload.data)
    audit(db, admin.id, "notification_broadcast", None, {"recipients": len(tokens), "sent": result.sent})
    return {
        "recipients": len(tokens),
        "sent": result.sent,
        "dropped": len(result.dropped),
        "message_ids": result.message_ids,
    }


@router.patch("/fcm-token", response_model=FcmTokenOut)
def update_fcm_token(
    payload: FcmTokenUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    register_device_token(db, user.id, payload.fcm_token, payload.platform)
    audit(db, user.id, "fcm_token_notification")
    return {"message": "FCM token updated"}
