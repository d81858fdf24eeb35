import enum
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from machlog.core.database import Base, new_id, utcnow, value_enum


class ProfileRole(str, enum.Enum):
    OPERATOR = "operator"
    TECHNICIAN = "technician"
    ADMIN = "admin"


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    role: Mapped[ProfileRole] = mapped_column(
        value_enum(ProfileRole, "profile_role"), default=ProfileRole.OPERATOR, nullable=False
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    # Надгробие: профиль не удаляется физически, чтобы не осиротить историю осмотров.
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
