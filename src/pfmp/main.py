import logging
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from pfmp.config import settings
from pfmp.create_tables import create_tables
from pfmp.database import SessionLocal

from pfmp.modules.auth.models.user import User, UserRole
from pfmp.modules.auth.services.auth_service import AuthService
from pfmp.modules.conventions.exceptions import BulkPartialFailure, ConventionError
from pfmp.modules.auth.controllers.auth_controller import router as auth_router
from pfmp.modules.conventions.controllers.convention_controller import router as convention_router
from pfmp.modules.conventions.controllers.signature_controller import router as signature_router
from pfmp.modules.mission_orders.controllers.mission_order_controller import router as mission_order_router
from pfmp.modules.notifications.controllers.notification_controller import router as notification_router
from pfmp.modules.otp.controllers.otp_controller import router as otp_router
from pfmp.modules.verification.controllers.verification_controller import router as verification_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Démarrage de %s", settings.APP_NAME)
    create_tables()
    if settings.SEED_DEMO_DATA:
        _seed_demo_users()
    yield
    logger.info("Application arrêtée")

DEMO_USERS = (
    ("Élève Démo", "eleve@pfmp.local", "eleve123", UserRole.STUDENT),
    ("Parent Démo", "parent@pfmp.local", "parent123", UserRole.PARENT),
    ("Enseignant Démo", "prof@pfmp.local", "prof123", UserRole.TEACHER),
    ("Entreprise Démo", "entreprise@pfmp.local", "entreprise123", UserRole.COMPANY_HEAD),
    ("Tuteur Démo", "tuteur@pfmp.local", "tuteur123", UserRole.TUTOR),
    ("Proviseur Démo", "proviseur@pfmp.local", "proviseur123", UserRole.SCHOOL_HEAD),
    ("Admin Démo", "admin@pfmp.local", "admin123", UserRole.ADMIN),
)

def _seed_demo_users():
    """Creates one account per role on an empty database"""
    with SessionLocal() as session:
        if session.query(User).count() > 0:
            logger.info("Comptes de démonstration déjà présents")
            return
        session.add_all([
            User(
                name=name,
                email=email,
                password_hash=AuthService.get_password_hash(password),
                role=role,
                is_active=True,
            )
            for name, email, password, role in DEMO_USERS
        ])
        session.commit()
        logger.info("Comptes de démonstration créés : %s", ", ".join(u[1] for u in DEMO_USERS))

app = FastAPI(
    title=settings.APP_NAME,
    description="API de gestion et de signature des conventions de PFMP",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.APP_BASE_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "X-Forwarded-For"],
)

@app.exception_handler(ConventionError)
async def convention_error_handler(request: Request, exc: ConventionError):
    content = {"detail": exc.message}
    if isinstance(exc, BulkPartialFailure):
        report = exc.report
        content.update(
            requested=report.requested,
            signed=report.signed,
            signed_ids=report.signed_ids,
            failures=[{"id": item_id, "error": message} for item_id, message in report.failures],
        )
    if exc.status_code >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)

# Routers
app.include_router(auth_router)
app.include_router(convention_router)
app.include_router(signature_router)
app.include_router(otp_router)
app.include_router(mission_order_router)
app.include_router(verification_router)
app.include_router(notification_router, prefix="/notifications", tags=["notifications"])

if __name__ == "__main__":
    uvicorn.run("pfmp.main:app", host="0.0.0.0", port=8000, reload=True)
