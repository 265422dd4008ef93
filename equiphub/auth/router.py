from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import structlog

from ..config import settings
from ..db import get_db
from ..models.models import ProjectMember, User
from ..schemas.auth import LoginRequest, MeResponse, TokenResponse
from .security import (
    _get_user_permission_map,
    create_access_token,
    get_current_user,
    verify_password,
)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(
        (User.username == req.identifier) | (User.email == req.identifier)
    ).first()
    if not user or not user.is_active or not verify_password(req.password, user.password_hash):
        logger.info("login_failed", identifier=req.identifier)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    access = create_access_token(user.id, roles=[r.name for r in user.roles])
    logger.info("login", user_id=user.id)
    return TokenResponse(access_token=access, expires_in=settings.jwt_ttl_seconds)


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    managed = db.query(ProjectMember.project_id).filter(
        ProjectMember.user_id == user.id,
        ProjectMember.role == "manager",
    ).order_by(ProjectMember.project_id).all()
    return MeResponse(
        id=user.id,
        username=user.username,
        name=user.name,
        roles=[r.name for r in user.roles],
        permissions={k: bool(v) for k, v in _get_user_permission_map(user).items()},
        managed_project_ids=[row.project_id for row in managed],
    )
