"""
FastAPI dependencies for authentication and database sessions.
"""

import uuid
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from coolscool.config import Settings
from coolscool.database import session_scope
from coolscool.kernel.identity.jwt import JWTManager
from coolscool.kernel.models.user import User
from coolscool.logging_config import bind_log_context
from coolscool.orchestration import SessionStateMachine


# Security scheme
security = HTTPBearer(auto_error=False)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: commits on success, rolls back on any error."""
    async with session_scope(request.app.state.database) as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_jwt_manager(request: Request) -> JWTManager:
    return request.app.state.jwt_manager


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    jwt_manager: Annotated[JWTManager, Depends(get_jwt_manager)],
    db: DbSession,
) -> User:
    """Get current authenticated user or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = jwt_manager.verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = uuid.UUID(payload.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    bind_log_context(user_id=user.id)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_state_machine(db: DbSession, settings: AppSettings) -> SessionStateMachine:
    return SessionStateMachine(db, default_question_count=settings.default_question_count)


SessionMachine = Annotated[SessionStateMachine, Depends(get_state_machine)]
