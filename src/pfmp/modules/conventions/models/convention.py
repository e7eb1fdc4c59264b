from sqlalchemy import Column, Integer, String, Date, DateTime, Enum, Boolean, Text, JSON
from sqlalchemy.orm import relationship
from typing import Optional

from pfmp.clock import utcnow, isoformat
from pfmp.database import Base
from pfmp.modules.conventions.models.enums import ConventionStatus, Role

class Convention(Base):
    __tablename__ = 'conventions'

    id = Column(Integer, primary_key=True)
    status = Column(Enum(ConventionStatus), nullable=False, default=ConventionStatus.SUBMITTED)
    est_mineur = Column(Boolean, nullable=False, default=False)

    # Signing cycle; a rejected convention is resubmitted into a new cycle.
    cycle = Column(Integer, nullable=False, default=1)
    # First cycle whose signatures are still live (see RESUBMIT_SIGNATURE_POLICY).
    signatures_from_cycle = Column(Integer, nullable=False, default=1)
    version = Column(Integer, nullable=False)

    # Student
    student_first_name = Column(String, nullable=False)
    student_last_name = Column(String, nullable=False)
    student_email = Column(String, nullable=False)
    student_birth_date = Column(Date, nullable=True)
    student_class = Column(String, nullable=True)
    student_address = Column(JSON, nullable=True)

    # Legal representatives (first one is the signing representative)
    legal_rep_first_name = Column(String, nullable=True)
    legal_rep_last_name = Column(String, nullable=True)
    legal_rep_email = Column(String, nullable=True)
    legal_rep_phone = Column(String, nullable=True)
    legal_representatives = Column(JSON, nullable=False, default=list)

    # School
    school_name = Column(String, nullable=True)
    school_head_name = Column(String, nullable=True)
    school_head_email = Column(String, nullable=True)
    teacher_name = Column(String, nullable=True)
    teacher_email = Column(String, nullable=True)
    tracking_teacher_email = Column(String, nullable=True)

    # Company
    company_name = Column(String, nullable=False)
    company_address = Column(JSON, nullable=True)
    company_rep_name = Column(String, nullable=True)
    company_rep_email = Column(String, nullable=True)
    company_rep_function = Column(String, nullable=True)
    tutor_name = Column(String, nullable=True)
    tutor_email = Column(String, nullable=True)
    tutor_function = Column(String, nullable=True)

    # Internship
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    schedule = Column(JSON, nullable=False, default=dict)
    absences = Column(JSON, nullable=False, default=list)
    activities = Column(Text, nullable=True)
    competences = Column(Text, nullable=True)
    derogation_justification = Column(Text, nullable=True)

    feedbacks = Column(JSON, nullable=False, default=list)
    invalid_emails = Column(JSON, nullable=False, default=list)
    certificate_hash = Column(String(12), nullable=True, index=True)
    last_reminder_at = Column(DateTime, nullable=True)

    created_by_email = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    signature_rows = relationship(
        "ConventionSignature", back_populates="convention",
        order_by="ConventionSignature.id", cascade="all, delete-orphan"
    )
    audit_logs = relationship(
        "AuditLogEntry", back_populates="convention",
        order_by="AuditLogEntry.id", cascade="all, delete-orphan"
    )
    attestation = relationship(
        "Attestation", back_populates="convention", uselist=False, cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def student_full_name(self) -> str:
        return f"{self.student_last_name} {self.student_first_name}".strip()

    @property
    def legal_rep_full_name(self) -> Optional[str]:
        if not self.legal_rep_last_name:
            return None
        return f"{self.legal_rep_last_name} {self.legal_rep_first_name or ''}".strip()

    def party_email(self, role: Role) -> Optional[str]:
        return getattr(self, role.email_field)

    def party_name(self, role: Role) -> Optional[str]:
        names = {
            Role.STUDENT: self.student_full_name,
            Role.PARENT: self.legal_rep_full_name,
            Role.TEACHER: self.teacher_name,
            Role.COMPANY_HEAD: self.company_rep_name,
            Role.TUTOR: self.tutor_name,
            Role.SCHOOL_HEAD: self.school_head_name,
        }
        return names[role]

    @property
    def signatures(self) -> dict:
        """Live signatures keyed by role.

        Rows from cycles older than ``signatures_from_cycle`` stay stored but
        no longer count.
        """
        floor = self.signatures_from_cycle or 1
        live = {}
        for row in self.signature_rows:
            if (row.cycle or 1) >= floor:
                live[row.role] = row
        return live

    @property
    def signed_roles(self) -> frozenset:
        return frozenset(self.signatures)

    def signature_map(self) -> dict:
        """Flat ``studentAt``/``studentImg``/``studentCode`` view of the live signatures."""
        flat = {}
        for role, row in self.signatures.items():
            key = role.signature_key
            flat[f"{key}At"] = isoformat(row.signed_at)
            flat[f"{key}Img"] = row.image
            flat[f"{key}Code"] = row.code
        return flat
