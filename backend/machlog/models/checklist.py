import enum
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from machlog.core.database import Base, new_id, utcnow, value_enum


class ItemStatus(str, enum.Enum):
    PASS = "ok"
    WARNING = "warning"
    FAIL = "fail"


class ChecklistStatus(str, enum.Enum):
    NORMAL = "ok"
    ISSUE_REPORTED = "issue_reported"


class ChecklistQuestion(Base):
    """Справочник вопросов осмотра. Через API не редактируется."""
    __tablename__ = "checklist_questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Checklist(Base):
    __tablename__ = "checklists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    checkin_id: Mapped[str] = mapped_column(ForeignKey("checkins.id"), unique=True, nullable=False)
    machine_id: Mapped[str] = mapped_column(ForeignKey("machines.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    observations: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ChecklistStatus] = mapped_column(
        value_enum(ChecklistStatus, "checklist_status"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    checkin = relationship("Checkin", back_populates="checklist")
    items = relationship("ChecklistItem", back_populates="checklist")


class ChecklistItem(Base):
    __tablename__ = "checklist_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    checklist_id: Mapped[str] = mapped_column(ForeignKey("checklists.id"), nullable=False)
    question_id: Mapped[str] = mapped_column(ForeignKey("checklist_questions.id"), nullable=False)
    status: Mapped[ItemStatus] = mapped_column(value_enum(ItemStatus, "item_status"), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    checklist = relationship("Checklist", back_populates="items")
