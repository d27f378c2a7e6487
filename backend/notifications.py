from datetime import datetime
from typing import Optional

from database import create_document, get_documents, map_doc, oid, update_document
from errors import NotFound
from schemas import Notification, NotificationType


async def create_notification(
    user_id: str,
    kind: NotificationType,
    message: str,
    order_id: Optional[str] = None,
    scheduled_date: Optional[datetime] = None,
) -> dict:
    doc = Notification(
        user_id=user_id,
        type=kind,
        message=message,
        scheduled_date=scheduled_date,
        order_id=order_id,
    ).model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
    return map_doc(await create_document("notification", doc))


async def list_notifications(user_id: str, unread_only: bool = False) -> list[dict]:
    flt = {"user_id": user_id}
    if unread_only:
        flt["read"] = False
    return [map_doc(d) for d in await get_documents("notification", flt)]


async def mark_read(db, user_id: str, notification_id: str) -> dict:
    _id = oid(notification_id, "Notification")
    doc = await db["notification"].find_one({"_id": _id})
    if not doc or doc["user_id"] != user_id:
        raise NotFound("Notification not found")
    return map_doc(await update_document("notification", _id, {"read": True}))
