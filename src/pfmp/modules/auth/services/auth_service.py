import logging
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session

from pfmp.clock import utcnow
from pfmp.config import settings
from pfmp.modules.auth.identity import Identity
from pfmp.modules.auth.models.user import User
from pfmp.modules.auth.schemas.auth_schemas import TokenResponse, UserCreate

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:
    """Password login, bearer tokens and the identity handed to the signing core."""

    @staticmethod
    def get_password_hash(password: str) -> str:
        return pwd_context.hash(password)

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        user = AuthService.get_user_by_email(db, email)
        if user is None or not user.is_active:
            return None
        if not pwd_context.verify(password, user.password_hash):
            logger.info("Failed login for %s", email)
            return None
        return user

    @staticmethod
    def create_user(db: Session, account: UserCreate) -> User:
        user = User(
            name=account.name,
            email=account.email,
            password_hash=AuthService.get_password_hash(account.password),
            role=account.role,
            phone=account.phone,
            is_super_admin=account.is_super_admin,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Account %s created with role %s", user.email, user.role.value)
        return user

    @staticmethod
    def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
        lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        claims = {"sub": subject, "exp": utcnow() + lifetime}
        return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def issue_token(user: User) -> TokenResponse:
        return TokenResponse(
            access_token=AuthService.create_access_token(user.email),
            token_type="bearer",
            user_id=user.id,
            user_name=user.name,
            user_role=user.role.value,
        )

    @staticmethod
    def get_current_user(db: Session, token: str) -> Optional[User]:
        """User named by a valid token, None for expired, forged or orphaned tokens."""
        try:
            claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            return None
        subject = claims.get("sub")
        if not subject:
            return None
        return AuthService.get_user_by_email(db, subject)

    @staticmethod
    def identity_for(user: User) -> Identity:
        """Builds the identity handed to the signing core.

        Super-admins are flagged either on the account or through
        SUPER_ADMIN_EMAILS.
        """
        admin_emails = {str(e).lower() for e in settings.SUPER_ADMIN_EMAILS}
        privileged = bool(user.is_super_admin) or user.email.lower() in admin_emails
        return Identity(email=user.email, is_privileged=privileged, name=user.name)
