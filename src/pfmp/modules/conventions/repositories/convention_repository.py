import logging
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pfmp.modules.conventions.exceptions import (
    ConcurrentModification, ConventionNotFound, PersistenceFailure
)
from pfmp.modules.conventions.models.attestation import Attestation
from pfmp.modules.conventions.models.convention import Convention
from pfmp.modules.conventions.models.enums import ConventionStatus
from pfmp.modules.conventions.models.signature import ConventionSignature
from pfmp.modules.conventions.services.audit_log import AuditEntry, AuditLog

logger = logging.getLogger(__name__)

PARTY_EMAIL_COLUMNS = (
    Convention.student_email,
    Convention.legal_rep_email,
    Convention.teacher_email,
    Convention.company_rep_email,
    Convention.tutor_email,
    Convention.school_head_email,
    Convention.tracking_teacher_email,
)


class ConventionRepository:
    """
    Key/value view of the convention store.

    Writes merge the given fields into the stored row; signatures and audit
    entries are inserted as new rows and never rewritten.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def get(self, convention_id: int) -> Convention:
        convention = self.db.get(Convention, convention_id, populate_existing=True)
        if convention is None:
            raise ConventionNotFound(convention_id)
        return convention

    def add(self, convention: Convention, entries: Iterable[AuditEntry] = (),
            finalize: Optional[Callable[[Convention], Iterable]] = None) -> Convention:
        """Inserts a new convention; ``finalize`` runs once it has an id."""
        self.db.add(convention)
        audit = AuditLog(convention)
        for entry in entries:
            audit.append(entry)
        if finalize is not None:
            self._write(self.db.flush)
            for obj in finalize(convention) or ():
                self.db.add(obj)
        self._commit()
        self.db.refresh(convention)
        return convention

    def update(self, convention_id: int, fields: Dict) -> Convention:
        convention = self.get(convention_id)
        for name, value in fields.items():
            setattr(convention, name, value)
        self._commit()
        return convention

    def append_audit(self, convention_id: int, entries: Iterable[AuditEntry]) -> List:
        convention = self.get(convention_id)
        audit = AuditLog(convention)
        rows = [audit.append(entry) for entry in entries]
        self._commit()
        return rows

    def save_signatures(
        self,
        convention: Convention,
        signatures: Iterable[ConventionSignature],
        new_status: ConventionStatus,
        entries: Iterable[AuditEntry],
        finalize: Optional[Callable[[Convention], Iterable]] = None,
    ) -> Convention:
        """
        Writes signature rows, their audit entries and the new status in one
        transaction. Either everything lands or nothing does.

        ``finalize`` runs once rows and status are in place, may set derived
        fields and returns extra rows to write in the same transaction.
        """
        for signature in signatures:
            convention.signature_rows.append(signature)
        audit = AuditLog(convention)
        for entry in entries:
            audit.append(entry)
        convention.status = new_status
        if finalize is not None:
            for obj in finalize(convention) or ():
                self.db.add(obj)
        self._commit()
        return convention

    def save(self, convention: Convention, entries: Iterable[AuditEntry] = (), pending: Iterable = ()) -> Convention:
        audit = AuditLog(convention)
        for entry in entries:
            audit.append(entry)
        for obj in pending:
            self.db.add(obj)
        self._commit()
        return convention

    def list_for_email(self, email: str) -> List[Convention]:
        email = email.lower()
        return (
            self.db.query(Convention)
            .filter(or_(*[func.lower(column) == email for column in PARTY_EMAIL_COLUMNS]))
            .order_by(Convention.created_at.desc())
            .all()
        )

    def list_all(self) -> List[Convention]:
        return self.db.query(Convention).order_by(Convention.created_at.desc()).all()

    def find_by_code(self, code: str) -> Optional[Convention]:
        """Looks a convention up by signature code, certificate hash or attestation hash."""
        code = code.strip().upper()
        by_signature = (
            self.db.query(Convention)
            .join(ConventionSignature, ConventionSignature.convention_id == Convention.id)
            .filter(ConventionSignature.code == code)
            .first()
        )
        if by_signature:
            return by_signature
        by_certificate = self.db.query(Convention).filter(Convention.certificate_hash == code).first()
        if by_certificate:
            return by_certificate
        return (
            self.db.query(Convention)
            .join(Attestation, Attestation.convention_id == Convention.id)
            .filter(or_(Attestation.hash == code, Attestation.signature_code == code))
            .first()
        )

    def _commit(self):
        self._write(self.db.commit)

    def _write(self, operation):
        try:
            operation()
        except (IntegrityError, StaleDataError) as e:
            self.db.rollback()
            logger.warning("Concurrent write rejected: %s", e)
            raise ConcurrentModification(
                "La convention a été modifiée entre-temps. Veuillez réessayer."
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Convention store failure: %s", e)
            raise PersistenceFailure(
                "La signature n'a pas pu être enregistrée. Aucune modification n'a été conservée, "
                "vous pouvez réessayer."
            ) from e
