"""Управление пользователями (только администратор). Удаление: надгробие, история осмотров сохраняется."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import String, cast, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from machlog.api.auth import RequireAdmin, UserInfo, profile_to_response
from machlog.core.database import get_db, utcnow
from machlog.core.logging_config import get_logger
from machlog.models import Profile
from machlog.schemas.profile import ProfileResponse, ProfileUpdate

router = APIRouter(prefix="/users", tags=["users"])
logger = get_logger(__name__)


async def _get_live_profile(db: AsyncSession, profile_id: str) -> Profile:
    result = await db.execute(
        select(Profile).where(Profile.id == profile_id, Profile.deleted_at.is_(None))
    )
    profile = result.scalar_one_or_none()
    if not profile:
        raise HTTPException(status_code=404, detail="Пользователь не найден")
    return profile


@router.get("", response_model=list[ProfileResponse])
async def list_users(
    q: Optional[str] = Query(None, description="Поиск по имени, e-mail, роли"),
    db: AsyncSession = Depends(get_db),
    _admin: UserInfo = Depends(RequireAdmin),
):
    stmt = select(Profile).where(Profile.deleted_at.is_(None)).order_by(Profile.created_at.desc())
    term = (q or "").strip()
    if term:
        stmt = stmt.where(
            or_(
                Profile.full_name.icontains(term, autoescape=True),
                Profile.email.icontains(term, autoescape=True),
                cast(Profile.role, String).icontains(term, autoescape=True),
            )
        )
    result = await db.execute(stmt)
    return [profile_to_response(p) for p in result.scalars().all()]


@router.patch("/{profile_id}", response_model=ProfileResponse)
async def update_user(
    profile_id: str,
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: UserInfo = Depends(RequireAdmin),
):
    profile = await _get_live_profile(db, profile_id)
    if data.full_name is not None:
        profile.full_name = data.full_name.strip() or None
    if data.role is not None:
        profile.role = data.role
    await db.commit()
    await db.refresh(profile)
    return profile_to_response(profile)


@router.delete("/{profile_id}")
async def delete_user(
    profile_id: str,
    db: AsyncSession = Depends(get_db),
    admin: UserInfo = Depends(RequireAdmin),
):
    if profile_id == admin.id:
        raise HTTPException(status_code=400, detail="Нельзя удалить собственный профиль")
    profile = await _get_live_profile(db, profile_id)
    profile.is_active = False
    profile.deleted_at = utcnow()
    await db.commit()
    logger.info("Профиль %s помечен удалённым", profile_id)
    return {"ok": True}
