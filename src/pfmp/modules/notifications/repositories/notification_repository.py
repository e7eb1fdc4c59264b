from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from pfmp.modules.notifications.models.notification import Notification


class NotificationRepository:
    """Inbox rows addressed by recipient email, compared case-insensitively."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def _for_recipient(self, email: str):
        return func.lower(Notification.recipient_email) == email.strip().lower()

    def inbox(self, email: str, unread_only: bool = False) -> List[Notification]:
        query = self.db.query(Notification).filter(self._for_recipient(email))
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    def find_owned(self, notification_id: int, email: str) -> Optional[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, self._for_recipient(email))
            .one_or_none()
        )

    def mark_read(self, notification: Notification) -> Notification:
        notification.read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, email: str) -> int:
        result = self.db.execute(
            update(Notification)
            .where(self._for_recipient(email), Notification.read.is_(False))
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount
