# pfmp/email_utils.py
import smtplib
from email.message import EmailMessage
import logging
from pfmp.config import settings

logger = logging.getLogger(__name__)


class Mailer:
    """Thin SMTP adapter. Without SMTP_HOST the message is only logged."""

    @property
    def is_configured(self) -> bool:
        return bool(settings.SMTP_HOST)

    def send(self, to_addr: str, subject: str, body: str):
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.EMAIL_FROM or settings.SMTP_USER
        msg["To"] = to_addr
        msg.set_content(body)

        if not self.is_configured:
            logger.info("SMTP non configuré, email pour %s non envoyé : %s", to_addr, subject)
            return

        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
                smtp.starttls()
                if settings.SMTP_USER:
                    smtp.login(settings.SMTP_USER, settings.SMTP_PASS)
                smtp.send_message(msg)
            logger.info("Email envoyé à %s", to_addr)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Échec de l'envoi de l'email à %s : %s", to_addr, e)
            raise
