from datetime import datetime
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from pfmp.modules.otp.models.otp_code import OtpCode


class OtpRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def _active(self, email: str, now: datetime):
        return (
            self.db.query(OtpCode)
            .filter(
                func.lower(OtpCode.email) == email.lower(),
                OtpCode.consumed_at.is_(None),
                OtpCode.invalidated_at.is_(None),
                OtpCode.expires_at > now,
            )
        )

    def invalidate_active(self, email: str, convention_id: int, now: datetime) -> int:
        """Invalidates every unconsumed code of (email, convention); not committed."""
        result = self.db.execute(
            update(OtpCode)
            .where(
                func.lower(OtpCode.email) == email.lower(),
                OtpCode.convention_id == convention_id,
                OtpCode.consumed_at.is_(None),
                OtpCode.invalidated_at.is_(None),
            )
            .values(invalidated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def add(self, otp: OtpCode) -> OtpCode:
        self.db.add(otp)
        self.db.flush()
        return otp

    def find_active(self, email: str, now: datetime, convention_id: Optional[int] = None,
                    code: Optional[str] = None) -> Optional[OtpCode]:
        """Newest active code of ``email``, narrowed to a convention or to a code value."""
        query = self._active(email, now)
        if convention_id is not None:
            query = query.filter(OtpCode.convention_id == convention_id)
        if code is not None:
            query = query.filter(OtpCode.code == code)
        return query.order_by(OtpCode.created_at.desc(), OtpCode.id.desc()).first()

    def consume(self, otp_id: int, now: datetime, commit: bool = True) -> bool:
        """
        Marks the code consumed only if nobody else did it first.
        Returns False when the conditional update matched no row.

        Without ``commit`` the update joins the caller's transaction and is
        undone by its rollback.
        """
        result = self.db.execute(
            update(OtpCode)
            .where(
                OtpCode.id == otp_id,
                OtpCode.consumed_at.is_(None),
                OtpCode.invalidated_at.is_(None),
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        if commit:
            self.db.commit()
        return result.rowcount == 1

    def register_failure(self, otp_id: int, max_attempts: int, now: datetime) -> int:
        """Counts a wrong guess; the code is invalidated once ``max_attempts`` is reached."""
        otp = self.db.get(OtpCode, otp_id, populate_existing=True)
        otp.attempts = (otp.attempts or 0) + 1
        if otp.attempts >= max_attempts:
            otp.invalidated_at = now
        self.db.commit()
        return otp.attempts

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
