"""Notification creation, listing and status endpoints."""

from fastapi import APIRouter, Query

from beacon.dependencies import DBSession, Notifications, Writer
from beacon.models.delivery import NotificationQueueItem
from beacon.models.notification import (
    BatchNotificationRequest,
    Notification,
    NotificationCreate,
)
from beacon.repositories.delivery_repo import NotificationQueueRepository
from beacon.services.notification_service import to_created

router = APIRouter(tags=["Notifications"])


def _render(row) -> dict:
    return Notification.model_validate(row).model_dump(mode="json")


@router.post("/notifications", status_code=201)
async def create_notification(
    body: NotificationCreate,
    service: Notifications,
    _user: Writer,
) -> dict:
    row = await service.create(body)
    return to_created(row).model_dump(mode="json")


@router.post("/notifications/batch", status_code=201)
async def create_notification_batch(
    body: BatchNotificationRequest,
    service: Notifications,
    _user: Writer,
) -> dict:
    created = await service.create_batch(body)
    return {
        "created": [c.model_dump(mode="json") for c in created],
        "count": len(created),
    }


@router.get("/users/{user_id}/notifications")
async def list_user_notifications(
    user_id: str,
    service: Notifications,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
) -> list[dict]:
    rows = await service.list_for_user(user_id, unread_only=unread_only, limit=limit)
    return [_render(row) for row in rows]


@router.get("/users/{user_id}/notifications/stats")
async def notification_stats(user_id: str, service: Notifications) -> dict:
    return (await service.stats(user_id)).model_dump(mode="json")


@router.post("/users/{user_id}/notifications/read-all")
async def mark_all_read(user_id: str, service: Notifications, _user: Writer) -> dict:
    updated = await service.mark_all_read(user_id)
    return {"user_id": user_id, "updated": updated}


@router.get("/notifications/{notification_id}")
async def get_notification(notification_id: str, service: Notifications) -> dict:
    return _render(await service.get(notification_id))


@router.post("/notifications/{notification_id}/read")
async def mark_read(notification_id: str, service: Notifications, _user: Writer) -> dict:
    return _render(await service.mark_read(notification_id))


@router.post("/notifications/{notification_id}/acted")
async def mark_acted(notification_id: str, service: Notifications, _user: Writer) -> dict:
    return _render(await service.mark_acted(notification_id))


@router.get("/notifications/{notification_id}/deliveries")
async def list_deliveries(notification_id: str, service: Notifications, db: DBSession) -> list[dict]:
    await service.get(notification_id)
    items = await NotificationQueueRepository(db).list_for_notification(notification_id)
    return [NotificationQueueItem.model_validate(i).model_dump(mode="json") for i in items]
