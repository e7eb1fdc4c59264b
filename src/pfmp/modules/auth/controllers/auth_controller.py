from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from pfmp.database import get_db
from pfmp.modules.auth.identity import Identity
from pfmp.modules.auth.models.user import User, UserRole
from pfmp.modules.auth.schemas.auth_schemas import LoginRequest, TokenResponse, UserCreate, UserResponse
from pfmp.modules.auth.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["authentication"])
bearer = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """Account behind the bearer token; inactive accounts are refused."""
    user = AuthService.get_current_user(db, credentials.credentials)
    if user is None or not user.is_active:
        raise _unauthorized("Jeton invalide")
    return user


def get_identity(current_user: User = Depends(get_current_user)) -> Identity:
    return AuthService.identity_for(current_user)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role is UserRole.ADMIN or AuthService.identity_for(current_user).is_privileged:
        return current_user
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Seuls les administrateurs peuvent créer des comptes",
    )


@router.post("/login", response_model=TokenResponse)
def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    user = AuthService.authenticate_user(db, credentials.email, credentials.password)
    if user is None:
        raise _unauthorized("Email ou mot de passe incorrect")
    return AuthService.issue_token(user)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(account: UserCreate, db: Session = Depends(get_db), _admin: User = Depends(require_admin)):
    """Accounts are provisioned by an administrator for each party of a convention."""
    if AuthService.get_user_by_email(db, account.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cet email est déjà enregistré")
    return AuthService.create_user(db, account)


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
