# pfmp/modules/notifications/services/notification_service.py
from typing import List, Optional

from pfmp.modules.conventions.models.enums import ConventionStatus, Role
from pfmp.modules.notifications.models.notification import Notification
from pfmp.modules.notifications.repositories.notification_repository import NotificationRepository

READABLE_STATUSES = {
    ConventionStatus.SUBMITTED: 'Soumise',
    ConventionStatus.SIGNED_PARENT: 'Signée par le représentant légal',
    ConventionStatus.VALIDATED_TEACHER: "Validée par l'enseignant",
    ConventionStatus.SIGNED_COMPANY: "Signée par l'entreprise",
    ConventionStatus.SIGNED_TUTOR: "Signée par l'entreprise et le tuteur",
    ConventionStatus.VALIDATED_HEAD: "Validée par le chef d'établissement",
    ConventionStatus.REJECTED: 'Rejetée',
}

class NotificationTemplate:
    def __init__(self, recipient_email: str, title: str, message: str, convention=None):
        self.recipient_email = recipient_email
        self.title = title
        self.message = message
        self.convention = convention

    def to_notification(self) -> Notification:
        return Notification(
            recipient_email=self.recipient_email,
            title=self.title,
            message=self.message,
            convention=self.convention,
        )

class StatusChangeNotification(NotificationTemplate):
    def __init__(self, recipient_email: str, convention):
        status_human = READABLE_STATUSES.get(convention.status, convention.status.value)
        title = "Changement de statut de convention"
        message = (
            f"La convention de stage de {convention.student_full_name} "
            f"est passée au statut : '{status_human}'."
        )
        super().__init__(recipient_email, title, message, convention)

class SignatureRequestNotification(NotificationTemplate):
    def __init__(self, recipient_email: str, role: Role, convention, reminder: bool = False):
        title = "Relance : signature attendue" if reminder else "Signature attendue"
        message = (
            f"Votre signature ({role.label}) est attendue sur la convention de stage de "
            f"{convention.student_full_name} chez {convention.company_name}."
        )
        super().__init__(recipient_email, title, message, convention)

class MissionOrderNotification(NotificationTemplate):
    def __init__(self, recipient_email: str, convention):
        title = "Ordre de mission"
        message = (
            f"Vous êtes désigné(e) pour le suivi du stage de {convention.student_full_name}. "
            "Un ordre de mission est en attente de signature."
        )
        super().__init__(recipient_email, title, message, convention)

class NotificationService:
    """
    Builds in-app notifications. ``build_*`` methods return unsaved rows so
    the caller can commit them with the change that triggered them.
    """

    def __init__(self, repository: NotificationRepository):
        self.notification_repository = repository

    @staticmethod
    def build_status_change(convention, pending_roles: List[Role]) -> List[Notification]:
        """One status notification for the student and one request per pending signer."""
        notifications = []
        if convention.student_email:
            notifications.append(StatusChangeNotification(convention.student_email, convention).to_notification())
        seen = set()
        for role in pending_roles:
            email = convention.party_email(role)
            if not email or email.lower() in seen:
                continue
            seen.add(email.lower())
            notifications.append(SignatureRequestNotification(email, role, convention).to_notification())
        return notifications

    @staticmethod
    def build_reminder(convention, role: Role) -> Optional[Notification]:
        email = convention.party_email(role)
        if not email:
            return None
        return SignatureRequestNotification(email, role, convention, reminder=True).to_notification()

    @staticmethod
    def build_mission_order(convention, teacher_email: str) -> Notification:
        return MissionOrderNotification(teacher_email, convention).to_notification()

    def inbox(self, email: str, unread_only: bool = False) -> List[Notification]:
        return self.notification_repository.inbox(email, unread_only=unread_only)

    def mark_as_read(self, notification_id: int, email: str) -> Optional[Notification]:
        """None when the notification does not exist or belongs to someone else."""
        notification = self.notification_repository.find_owned(notification_id, email)
        if notification is None:
            return None
        return self.notification_repository.mark_read(notification)

    def mark_all_as_read(self, email: str) -> int:
        return self.notification_repository.mark_all_read(email)
