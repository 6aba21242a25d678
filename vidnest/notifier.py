import logging
from typing import Optional

from bson import ObjectId

from vidnest.database import create_document, get_db
from vidnest.schemas import Notification, NotificationType

logger = logging.getLogger(__name__)


def notify(
    recipient: ObjectId,
    sender: Optional[ObjectId],
    type: NotificationType,
    message: str,
    video: Optional[ObjectId] = None,
    comment: Optional[ObjectId] = None,
) -> Optional[str]:
    """Create a notification. Users are never notified about their own actions."""
    if recipient is None or recipient == sender:
        return None
    notification = Notification(
        recipient=recipient,
        sender=sender,
        type=type,
        video=video,
        comment=comment,
        message=message,
    )
    data = notification.model_dump()
    data["type"] = notification.type.value
    return create_document("notification", data)


def notify_subscribers(channel: ObjectId, type: NotificationType, message: str, video: Optional[ObjectId] = None) -> int:
    subscribers = get_db()["subscription"].find({"channel": channel}, {"subscriber": 1})
    sent = 0
    for sub in subscribers:
        if notify(sub["subscriber"], channel, type, message, video=video):
            sent += 1
    logger.info("Notified %d subscribers of %s (%s)", sent, channel, type.value)
    return sent
