"""Заезд (check-in): начало одного осмотра одной машины одним инспектором. После создания не меняется."""
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from machlog.core.database import Base, new_id, utcnow


class Checkin(Base):
    __tablename__ = "checkins"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    machine_id: Mapped[str] = mapped_column(ForeignKey("machines.id"), nullable=False)
    shift_start: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    machine = relationship("Machine", back_populates="checkins")
    user = relationship("Profile")
    checklist = relationship("Checklist", back_populates="checkin", uselist=False)
