# pfmp/create_tables.py
import logging

from pfmp.database import engine, Base
# Importe tous les modeles pour qu'ils soient enregistres sur Base
from pfmp.modules.auth.models.user import User  # noqa: F401
from pfmp.modules.conventions.models import (  # noqa: F401
    Attestation, AuditLogEntry, Convention, ConventionSignature
)
from pfmp.modules.mission_orders.models.mission_order import MissionOrder  # noqa: F401
from pfmp.modules.notifications.models.notification import Notification  # noqa: F401
from pfmp.modules.otp.models.otp_code import OtpCode  # noqa: F401

logger = logging.getLogger(__name__)


def create_tables(bind=None):
    """Creates every table on the given engine (the application engine by default)"""
    logger.info("Tables : %s", ", ".join(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_tables()
