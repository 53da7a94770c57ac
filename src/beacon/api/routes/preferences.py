"""Per-user notification preference endpoints."""

from fastapi import APIRouter

from beacon.dependencies import Notifications, Writer
from beacon.models.preferences import NotificationPreferencesUpdate

router = APIRouter(tags=["Preferences"])


@router.get("/users/{user_id}/notification-preferences")
async def get_preferences(user_id: str, service: Notifications) -> dict:
    """Stored preferences, or the defaults when the user has none."""
    return (await service.get_preferences(user_id)).model_dump(mode="json")


@router.put("/users/{user_id}/notification-preferences")
async def put_preferences(
    user_id: str,
    body: NotificationPreferencesUpdate,
    service: Notifications,
    _user: Writer,
) -> dict:
    return (await service.update_preferences(user_id, body)).model_dump(mode="json")
