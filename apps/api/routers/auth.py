"""
Authentication router: identity gateway sync and current user lookup.
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from services.session_token import create_session_token
from services.users import SqlUserResolver, upsert_user

router = APIRouter()


class SyncSessionRequest(BaseModel):
    steam_id: int = Field(gt=0, lt=2**63)
    steam_name: str = Field(default="", max_length=128)


class SyncSessionResponse(BaseModel):
    user_id: str
    steam_id: int
    steam_name: str
    banned: bool
    session_token: str
    session_expires_at: int


class CurrentUserResponse(BaseModel):
    user_id: str
    steam_id: int
    steam_name: str
    banned: bool
    created_at: Optional[str] = None


def _require_service_key(x_service_key: Optional[str] = Header(default=None)) -> None:
    expected = settings.AUTH_SERVICE_KEY or ""
    if not x_service_key or not expected or not secrets.compare_digest(x_service_key.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid service key.")


@router.post("/sync", response_model=SyncSessionResponse)
async def sync_session(
    request: SyncSessionRequest,
    _service_key: None = Depends(_require_service_key),
    db: AsyncSession = Depends(get_db),
):
    """
    Register or refresh a Steam user verified by the identity gateway and issue a session token.
    """
    user = await upsert_user(db, request.steam_id, request.steam_name)
    session = create_session_token(user.steam_id, user.steam_name)
    return SyncSessionResponse(
        user_id=user.id,
        steam_id=user.steam_id,
        steam_name=user.steam_name,
        banned=bool(user.banned),
        session_token=session["token"],
        session_expires_at=session["expires_at"],
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the user record behind the current session."""
    user = await SqlUserResolver(db).try_resolve(auth.steam_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return CurrentUserResponse(
        user_id=user.id,
        steam_id=user.steam_id,
        steam_name=user.steam_name,
        banned=bool(user.banned),
        created_at=user.created_at.isoformat() if user.created_at else None,
    )
