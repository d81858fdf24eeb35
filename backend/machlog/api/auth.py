"""Вход по e-mail+пароль, JWT, состояние сессии, проверка ролей и маршрутов."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from machlog.config import Settings
from machlog.core.database import get_db
from machlog.core.logging_config import get_logger
from machlog.core.permissions import (
    Resource,
    can_access_resource,
    evaluate_route,
    get_menu_items,
)
from machlog.models import Profile
from machlog.schemas.profile import ProfileResponse, RegisterRequest
from machlog.services.auth_service import create_access_token, hash_password, verify_password
from machlog.services.session_service import resolve_session, revoke_token, session_state

router = APIRouter(prefix="/auth", tags=["auth"])
security = HTTPBearer(auto_error=False)
logger = get_logger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


class UserInfo(BaseModel):
    id: str
    full_name: str
    role: str
    email: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserInfo


def _bearer(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials


def _user_info(p: Profile) -> UserInfo:
    return UserInfo(id=p.id, full_name=p.full_name or "", role=p.role.value, email=p.email or "")


def profile_to_response(p: Profile) -> ProfileResponse:
    return ProfileResponse(
        id=p.id,
        role=p.role.value,
        full_name=p.full_name,
        email=p.email,
        created_at=p.created_at.isoformat() if p.created_at else "",
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[UserInfo]:
    profile = await resolve_session(db, settings, _bearer(credentials))
    return _user_info(profile) if profile else None


def require_resource(resource: Resource):
    async def _check(
        current_user: Optional[UserInfo] = Depends(get_current_user),
    ) -> UserInfo:
        if not current_user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Требуется авторизация",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not can_access_resource(current_user.role, resource):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Недостаточно прав")
        return current_user
    return _check


RequireAnyAuth = require_resource(Resource.INSPECTION)
RequireMachineAccess = require_resource(Resource.MACHINES)
RequireAdmin = require_resource(Resource.USERS)


@router.post("/login", response_model=LoginResponse)
async def login(
    form: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    email = (form.username or "").strip().lower()
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Неверный e-mail или пароль")
    result = await db.execute(
        select(Profile).where(
            func.lower(Profile.email) == email,
            Profile.is_active == True,
            Profile.deleted_at.is_(None),
        )
    )
    profile = result.scalar_one_or_none()
    if not profile or not profile.password_hash:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверный e-mail или пароль",
        )
    if not verify_password(form.password, profile.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверный e-mail или пароль",
        )
    token = create_access_token(
        settings,
        subject=profile.id,
        role=profile.role.value,
        name=profile.full_name or "",
        email=profile.email or "",
    )
    return LoginResponse(access_token=token, user=_user_info(profile))


@router.post("/logout")
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Выход. Повторный вызов и вызов без токена тоже успешны."""
    revoked = await revoke_token(db, settings, _bearer(credentials))
    await db.commit()
    return {"ok": True, "revoked": revoked}


class SessionResponse(BaseModel):
    status: str
    profile: Optional[ProfileResponse] = None


@router.get("/session", response_model=SessionResponse)
async def session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Состояние сессии без 401: authenticated с профилем или unauthenticated."""
    profile = await resolve_session(db, settings, _bearer(credentials))
    return SessionResponse(
        status=session_state(profile).value,
        profile=profile_to_response(profile) if profile else None,
    )


class MenuItem(BaseModel):
    id: str
    label: str
    href: str
    divider: Optional[bool] = None
    action: Optional[str] = None


class MeResponse(BaseModel):
    id: str
    full_name: str
    role: str
    email: str
    menu_items: List[MenuItem]


@router.get("/me", response_model=MeResponse)
async def me(current_user: UserInfo = Depends(RequireAnyAuth)):
    """Текущий пользователь и пункты навигации по роли."""
    menu = get_menu_items(current_user.role)
    return MeResponse(
        id=current_user.id,
        full_name=current_user.full_name,
        role=current_user.role,
        email=current_user.email,
        menu_items=[MenuItem(**m) for m in menu],
    )


class RouteResponse(BaseModel):
    path: str
    action: str
    location: Optional[str] = None


@router.get("/route", response_model=RouteResponse)
async def check_route(
    path: str = Query(..., description="Путь клиента, например /machines"),
    current_user: Optional[UserInfo] = Depends(get_current_user),
):
    """Решение роутера клиента для пути: render или redirect (куда)."""
    state = session_state(current_user)
    decision = evaluate_route(path, state, current_user.role if current_user else None)
    return RouteResponse(path=path, action=decision.action, location=decision.location)


@router.post("/register", response_model=ProfileResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    _admin: UserInfo = Depends(RequireAdmin),
):
    """Создать пользователя (только администратор)."""
    email = body.email.strip().lower()
    r = await db.execute(select(Profile.id).where(func.lower(Profile.email) == email))
    if r.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="Пользователь с таким e-mail уже есть")
    profile = Profile(
        email=email,
        full_name=body.full_name.strip(),
        role=body.role,
        password_hash=hash_password(body.password),
        is_active=True,
    )
    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    logger.info("Зарегистрирован пользователь %s (%s)", email, body.role.value)
    return profile_to_response(profile)
