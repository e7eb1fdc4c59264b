import hashlib
import json
import logging
from typing import List, Mapping, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pfmp.clock import utcnow
from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.exceptions import (
    BulkPartialFailure, BulkSignReport, ConventionError, IdentityMismatch, InvalidTransition,
    PersistenceFailure
)
from pfmp.modules.conventions.models.convention import Convention
from pfmp.modules.conventions.services.signature_images import require_drawn_signature
from pfmp.modules.mission_orders.models.mission_order import MissionOrder, MissionOrderStatus

logger = logging.getLogger(__name__)


def mission_order_hash(order: MissionOrder) -> str:
    """``ODM-`` followed by 12 hex characters of the canonical fields."""
    canonical = json.dumps({
        "id": order.id,
        "c": order.convention_id,
        "t": order.teacher_email.lower(),
        "d": order.distance_km,
        "sn": order.signer_name,
        "sd": order.signed_at.isoformat() if order.signed_at else None,
    }, sort_keys=True, separators=(",", ":"))
    return "ODM-" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:12].upper()


class MissionOrderService:

    def __init__(self, db: Session):
        self.db = db

    def find(self, convention_id: int, teacher_email: str) -> Optional[MissionOrder]:
        return (
            self.db.query(MissionOrder)
            .filter(
                MissionOrder.convention_id == convention_id,
                func.lower(MissionOrder.teacher_email) == teacher_email.lower(),
            )
            .first()
        )

    def build(self, convention: Convention, teacher_email: str,
              school_address: Optional[Mapping] = None, distance_km: Optional[float] = None) -> MissionOrder:
        """The existing order of (convention, teacher), or a new unsaved PENDING one."""
        existing = self.find(convention.id, teacher_email)
        if existing is not None:
            return existing
        return MissionOrder(
            convention=convention,
            teacher_email=teacher_email,
            school_address=dict(school_address) if school_address else None,
            company_address=convention.company_address,
            distance_km=distance_km,
            status=MissionOrderStatus.PENDING,
        )

    def create(self, convention: Convention, teacher_email: str,
               school_address: Optional[Mapping] = None, distance_km: Optional[float] = None) -> MissionOrder:
        order = self.build(convention, teacher_email, school_address, distance_km)
        self.db.add(order)
        self._commit()
        self.db.refresh(order)
        return order

    def list_for(self, identity: Identity) -> List[MissionOrder]:
        query = self.db.query(MissionOrder).join(Convention, MissionOrder.convention_id == Convention.id)
        if not identity.is_privileged:
            email = identity.email.lower()
            query = query.filter(or_(
                func.lower(MissionOrder.teacher_email) == email,
                func.lower(Convention.school_head_email) == email,
            ))
        return query.order_by(MissionOrder.created_at.desc(), MissionOrder.id.desc()).all()

    def sign(self, order_ids: Sequence[int], identity: Identity, image: str,
             signer_name: Optional[str] = None, max_distance_km: Optional[float] = None) -> BulkSignReport:
        """
        Signs each PENDING order on its own, by the school head of its convention.

        Orders beyond ``max_distance_km`` are left pending. Already signed
        orders are not rolled back when a later one fails; BulkPartialFailure
        carries the report in that case.
        """
        image = require_drawn_signature(image)
        report = BulkSignReport(requested=len(order_ids))
        for order_id in order_ids:
            try:
                self._sign_one(order_id, identity, image, signer_name, max_distance_km)
            except ConventionError as e:
                logger.warning("Mission order %s not signed: %s", order_id, e.message)
                report.failures.append((order_id, e.message))
                continue
            report.signed += 1
            report.signed_ids.append(order_id)
        if report.failures:
            raise BulkPartialFailure(report)
        return report

    def _sign_one(self, order_id: int, identity: Identity, image: str,
                  signer_name: Optional[str], max_distance_km: Optional[float]):
        order = self.db.get(MissionOrder, order_id, populate_existing=True)
        if order is None:
            raise InvalidTransition(f"Ordre de mission {order_id} introuvable")
        if order.status is not MissionOrderStatus.PENDING:
            raise InvalidTransition(f"L'ordre de mission {order_id} est déjà signé.")
        head_email = order.convention.school_head_email
        if not identity.is_privileged and not identity.matches(head_email):
            raise IdentityMismatch(identity.email, head_email)
        if max_distance_km is not None and (order.distance_km or 0) > max_distance_km:
            raise InvalidTransition(
                f"L'ordre de mission {order_id} dépasse {max_distance_km:g} km et a été exclu."
            )
        order.status = MissionOrderStatus.SIGNED
        order.signature_image = image
        order.signer_name = signer_name or identity.name or identity.email
        order.signer_email = identity.email
        order.signed_at = utcnow()
        order.signature_hash = mission_order_hash(order)
        self._commit()

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Mission order store failure: %s", e)
            raise PersistenceFailure("L'ordre de mission n'a pas pu être enregistré.") from e
