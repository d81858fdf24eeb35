"""
Разрешение сессии: токен → живой профиль.
Любая ошибка чтения из БД деградирует до «профиля нет»: для доступа это то же, что «не вошёл».
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from machlog.config import Settings
from machlog.core.logging_config import get_logger
from machlog.core.permissions import SessionState
from machlog.models import Profile, RevokedToken
from machlog.services.auth_service import decode_token

logger = get_logger(__name__)


async def get_live_profile(db: AsyncSession, profile_id: str) -> Optional[Profile]:
    result = await db.execute(
        select(Profile).where(
            Profile.id == profile_id,
            Profile.is_active == True,
            Profile.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def is_revoked(db: AsyncSession, jti: str) -> bool:
    r = await db.execute(select(RevokedToken.jti).where(RevokedToken.jti == jti))
    return r.scalar_one_or_none() is not None


async def resolve_session(db: AsyncSession, settings: Settings, token: Optional[str]) -> Optional[Profile]:
    if not token:
        return None
    payload = decode_token(settings, token)
    if not payload or "sub" not in payload:
        logger.warning("Сессия: токен не прошёл проверку (неверный или истёк)")
        return None
    try:
        jti = payload.get("jti")
        if jti and await is_revoked(db, jti):
            return None
        return await get_live_profile(db, str(payload["sub"]))
    except SQLAlchemyError as e:
        logger.warning("Сессия: профиль не загружен, считаем вход отсутствующим: %s", e)
        await db.rollback()
        return None


def session_state(profile: Optional[Profile]) -> SessionState:
    return SessionState.AUTHENTICATED if profile is not None else SessionState.UNAUTHENTICATED


async def revoke_token(db: AsyncSession, settings: Settings, token: Optional[str]) -> bool:
    """Отозвать токен. Повторный выход и выход без токена не ошибка. True, если запись добавлена."""
    if not token:
        return False
    payload = decode_token(settings, token)
    if not payload or not payload.get("jti"):
        return False
    jti = payload["jti"]
    if await is_revoked(db, jti):
        return False
    db.add(RevokedToken(jti=jti))
    await db.flush()
    return True
