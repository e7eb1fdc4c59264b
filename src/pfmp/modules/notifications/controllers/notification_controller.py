from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from pfmp.database import get_db
from pfmp.modules.auth.controllers.auth_controller import get_identity
from pfmp.modules.auth.identity import Identity
from pfmp.modules.notifications.models.schemas import MarkAllReadResponse, NotificationResponse
from pfmp.modules.notifications.repositories.notification_repository import NotificationRepository
from pfmp.modules.notifications.services.notification_service import NotificationService

router = APIRouter()


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(NotificationRepository(db))


@router.get("/me", response_model=List[NotificationResponse], summary="Boîte de réception")
def inbox(
    unread_only: bool = Query(False, description="Seulement les notifications non lues"),
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    return service.inbox(identity.email, unread_only=unread_only)


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    notification = service.mark_as_read(notification_id, identity.email)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification introuvable")
    return notification


@router.post("/me/read-all", response_model=MarkAllReadResponse)
def mark_all_read(
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    return MarkAllReadResponse(updated=service.mark_all_as_read(identity.email))
