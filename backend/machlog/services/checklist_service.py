"""
Осмотр по чек-листу: загрузка вопросов, агрегированный статус и запись результата.

Запись идёт в одной транзакции: сначала строка checklists, затем одним пакетом
строки checklist_items на каждый вопрос. Частичной записи пунктов нет.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from machlog.core.logging_config import get_logger
from machlog.models import (
    Checkin,
    Checklist,
    ChecklistItem,
    ChecklistQuestion,
    ChecklistStatus,
    ItemStatus,
)

logger = get_logger(__name__)


class ChecklistError(Exception):
    status_code = 400


class CheckinNotFound(ChecklistError):
    status_code = 404

    def __init__(self, checkin_id: str):
        super().__init__("Заезд не найден")
        self.checkin_id = checkin_id


class ChecklistAlreadySubmitted(ChecklistError):
    status_code = 409

    def __init__(self, checkin_id: str):
        super().__init__("Чек-лист для этого заезда уже сохранён")
        self.checkin_id = checkin_id


class ResponsesMismatch(ChecklistError):
    status_code = 422


@dataclass
class ItemResponse:
    question_id: str
    status: ItemStatus = ItemStatus.PASS
    notes: str = ""


@dataclass
class ChecklistSubmission:
    checkin_id: str
    inspector_id: str
    responses: List[ItemResponse]
    observations: str = ""
    question_ids: Optional[List[str]] = None


def aggregate_status(statuses: Iterable[ItemStatus]) -> ChecklistStatus:
    """issue_reported, если хоть один ответ отличается от «норма»."""
    if any(ItemStatus(s) != ItemStatus.PASS for s in statuses):
        return ChecklistStatus.ISSUE_REPORTED
    return ChecklistStatus.NORMAL


async def load_questions(db: AsyncSession) -> List[ChecklistQuestion]:
    result = await db.execute(
        select(ChecklistQuestion)
        .where(ChecklistQuestion.is_active == True)
        .order_by(ChecklistQuestion.category, ChecklistQuestion.id)
    )
    return list(result.scalars().all())


async def get_checkin(db: AsyncSession, checkin_id: str) -> Optional[Checkin]:
    result = await db.execute(select(Checkin).where(Checkin.id == checkin_id))
    return result.scalar_one_or_none()


async def get_checklist_for_checkin(db: AsyncSession, checkin_id: str) -> Optional[Checklist]:
    result = await db.execute(select(Checklist).where(Checklist.checkin_id == checkin_id))
    return result.scalar_one_or_none()


async def get_items(db: AsyncSession, checklist_id: str) -> List[ChecklistItem]:
    result = await db.execute(
        select(ChecklistItem).where(ChecklistItem.checklist_id == checklist_id).order_by(ChecklistItem.id)
    )
    return list(result.scalars().all())


def check_responses_cover(responses: List[ItemResponse], question_ids: List[str]) -> None:
    """Ответы ровно на заданный набор вопросов: без пропусков, лишних и повторов."""
    answered = [r.question_id for r in responses]
    if len(answered) != len(set(answered)):
        raise ResponsesMismatch("Повторный ответ на один и тот же вопрос")
    if set(answered) != set(question_ids):
        raise ResponsesMismatch("Ответы не совпадают с набором вопросов осмотра")


async def submit_checklist(db: AsyncSession, submission: ChecklistSubmission) -> Checklist:
    checkin = await get_checkin(db, submission.checkin_id)
    if checkin is None:
        raise CheckinNotFound(submission.checkin_id)
    if await get_checklist_for_checkin(db, checkin.id) is not None:
        raise ChecklistAlreadySubmitted(checkin.id)
    if submission.question_ids is not None:
        check_responses_cover(submission.responses, submission.question_ids)

    status = aggregate_status(r.status for r in submission.responses)
    checklist = Checklist(
        checkin_id=checkin.id,
        machine_id=checkin.machine_id,
        user_id=submission.inspector_id,
        observations=submission.observations,
        status=status,
    )
    db.add(checklist)
    await db.flush()

    db.add_all([
        ChecklistItem(
            checklist_id=checklist.id,
            question_id=r.question_id,
            status=r.status,
            notes=r.notes,
        )
        for r in submission.responses
    ])
    await db.flush()
    logger.info(
        "Чек-лист сохранён: id=%s заезд=%s пунктов=%s статус=%s",
        checklist.id, checkin.id, len(submission.responses), status.value,
    )
    return checklist
