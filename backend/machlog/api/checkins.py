"""Заезды и осмотр по чек-листу: пошаговый мастер и отправка целиком."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from machlog.api.auth import RequireAnyAuth, UserInfo
from machlog.core.database import get_db
from machlog.core.logging_config import get_logger
from machlog.models import Checkin, Checklist, Machine
from machlog.schemas.checklist import (
    CheckinResponse,
    ChecklistItemResponse,
    ChecklistResponse,
    ChecklistSubmit,
    QuestionResponse,
    WizardAnswer,
    WizardObservations,
    WizardView,
)
from machlog.services import checklist_service
from machlog.services.checklist_service import (
    ChecklistError,
    ChecklistSubmission,
    ItemResponse,
)
from machlog.services.checklist_wizard import (
    ChecklistWizard,
    WizardError,
    WizardState,
    WizardStore,
)

router = APIRouter(tags=["checklists"])
logger = get_logger(__name__)


def get_wizard_store(request: Request) -> WizardStore:
    return request.app.state.wizards


def _checkin_to_response(checkin: Checkin, machine: Machine, checklist: Checklist = None) -> CheckinResponse:
    return CheckinResponse(
        id=checkin.id,
        user_id=checkin.user_id,
        machine_id=checkin.machine_id,
        machine_code=machine.code if machine else None,
        machine_name=machine.name if machine else None,
        shift_start=checkin.shift_start.isoformat(),
        created_at=checkin.created_at.isoformat(),
        checklist_status=checklist.status.value if checklist else None,
    )


def _checklist_to_response(c: Checklist, items) -> ChecklistResponse:
    return ChecklistResponse(
        id=c.id,
        checkin_id=c.checkin_id,
        machine_id=c.machine_id,
        user_id=c.user_id,
        observations=c.observations,
        status=c.status.value,
        created_at=c.created_at.isoformat() if c.created_at else "",
        items=[
            ChecklistItemResponse(id=i.id, question_id=i.question_id, status=i.status.value, notes=i.notes)
            for i in items
        ],
    )


def _wizard_view(w: ChecklistWizard) -> WizardView:
    q = w.current_question
    r = w.current_response
    return WizardView(
        checkin_id=w.checkin_id,
        state=w.state.value,
        index=w.index,
        total=w.total,
        can_go_back=w.can_go_back,
        question=QuestionResponse(id=q.id, question=q.question, category=q.category) if q else None,
        status=r.status.value if r else None,
        notes=r.notes if r else None,
        observations=w.observations,
        error=w.error,
        checklist_id=w.checklist_id,
        next=w.next_path,
    )


async def _get_checkin_or_404(db: AsyncSession, checkin_id: str) -> Checkin:
    checkin = await checklist_service.get_checkin(db, checkin_id)
    if not checkin:
        raise HTTPException(status_code=404, detail="Заезд не найден")
    return checkin


def _own_wizard(store: WizardStore, checkin_id: str, user: UserInfo) -> ChecklistWizard:
    wizard = store.get(checkin_id)
    if wizard is None:
        raise HTTPException(status_code=404, detail="Осмотр не начат")
    if wizard.inspector_id != user.id:
        raise HTTPException(status_code=403, detail="Осмотр ведёт другой инспектор")
    return wizard


@router.get("/checklist-questions", response_model=List[QuestionResponse])
async def list_questions(
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireAnyAuth),
):
    questions = await checklist_service.load_questions(db)
    return [QuestionResponse(id=q.id, question=q.question, category=q.category) for q in questions]


@router.get("/checkins/recent", response_model=List[CheckinResponse])
async def recent_checkins(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireAnyAuth),
):
    """Последние осмотры текущего пользователя (новые сверху)."""
    q = (
        select(Checkin, Machine, Checklist)
        .join(Machine, Machine.id == Checkin.machine_id)
        .outerjoin(Checklist, Checklist.checkin_id == Checkin.id)
        .where(Checkin.user_id == user.id)
        .order_by(Checkin.created_at.desc())
        .limit(limit)
    )
    rows = (await db.execute(q)).all()
    return [_checkin_to_response(c, m, cl) for c, m, cl in rows]


@router.get("/checkins/{checkin_id}", response_model=CheckinResponse)
async def get_checkin(
    checkin_id: str,
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireAnyAuth),
):
    checkin = await _get_checkin_or_404(db, checkin_id)
    machine = await db.get(Machine, checkin.machine_id)
    checklist = await checklist_service.get_checklist_for_checkin(db, checkin.id)
    return _checkin_to_response(checkin, machine, checklist)


@router.get("/checkins/{checkin_id}/checklist", response_model=ChecklistResponse)
async def get_checklist(
    checkin_id: str,
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireAnyAuth),
):
    checklist = await checklist_service.get_checklist_for_checkin(db, checkin_id)
    if not checklist:
        raise HTTPException(status_code=404, detail="Чек-лист не найден")
    items = await checklist_service.get_items(db, checklist.id)
    return _checklist_to_response(checklist, items)


@router.post("/checkins/{checkin_id}/checklist", response_model=ChecklistResponse, status_code=201)
async def submit_checklist(
    checkin_id: str,
    body: ChecklistSubmit,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireAnyAuth),
):
    """Отправить осмотр целиком: ответы должны покрывать ровно активный набор вопросов."""
    questions = await checklist_service.load_questions(db)
    submission = ChecklistSubmission(
        checkin_id=checkin_id,
        inspector_id=user.id,
        responses=[ItemResponse(question_id=i.question_id, status=i.status, notes=i.notes) for i in body.items],
        observations=body.observations,
        question_ids=[q.id for q in questions],
    )
    try:
        checklist = await checklist_service.submit_checklist(db, submission)
    except ChecklistError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    await db.commit()
    items = await checklist_service.get_items(db, checklist.id)
    return _checklist_to_response(checklist, items)


@router.post("/checkins/{checkin_id}/wizard", response_model=WizardView, status_code=201)
async def start_wizard(
    checkin_id: str,
    db: AsyncSession = Depends(get_db),
    store: WizardStore = Depends(get_wizard_store),
    user: UserInfo = Depends(RequireAnyAuth),
):
    """Начать (или продолжить) пошаговый осмотр по заезду."""
    checkin = await _get_checkin_or_404(db, checkin_id)
    existing = store.get(checkin.id)
    if await checklist_service.get_checklist_for_checkin(db, checkin.id) is not None:
        # черновик пережил отправку чек-листа другим путём
        store.discard(checkin.id)
        raise HTTPException(status_code=409, detail="Чек-лист для этого заезда уже сохранён")
    if existing is not None and existing.state != WizardState.DONE:
        if existing.inspector_id != user.id:
            raise HTTPException(status_code=403, detail="Осмотр ведёт другой инспектор")
        return _wizard_view(existing)
    wizard = ChecklistWizard(checkin.id, user.id)
    wizard.load(await checklist_service.load_questions(db))
    store.put(wizard)
    return _wizard_view(wizard)


@router.get("/checkins/{checkin_id}/wizard", response_model=WizardView)
async def get_wizard(
    checkin_id: str,
    store: WizardStore = Depends(get_wizard_store),
    user: UserInfo = Depends(RequireAnyAuth),
):
    return _wizard_view(_own_wizard(store, checkin_id, user))


@router.delete("/checkins/{checkin_id}/wizard")
async def abandon_wizard(
    checkin_id: str,
    store: WizardStore = Depends(get_wizard_store),
    user: UserInfo = Depends(RequireAnyAuth),
):
    """Бросить черновик осмотра. Повторный вызов не ошибка."""
    wizard = store.get(checkin_id)
    if wizard is not None:
        if wizard.inspector_id != user.id:
            raise HTTPException(status_code=403, detail="Осмотр ведёт другой инспектор")
        store.discard(checkin_id)
    return {"ok": True}


def _wizard_action(wizard: ChecklistWizard, action, *args) -> WizardView:
    try:
        action(*args)
    except WizardError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _wizard_view(wizard)


@router.put("/checkins/{checkin_id}/wizard/answer", response_model=WizardView)
async def answer_question(
    checkin_id: str,
    body: WizardAnswer,
    store: WizardStore = Depends(get_wizard_store),
    user: UserInfo = Depends(RequireAnyAuth),
):
    """Ответ на текущий вопрос: статус перезаписывает прежний выбор, заметка: текст."""
    wizard = _own_wizard(store, checkin_id, user)
    if body.status is not None:
        _wizard_action(wizard, wizard.choose, body.status)
    if body.notes is not None:
        _wizard_action(wizard, wizard.set_note, body.notes)
    return _wizard_view(wizard)


@router.post("/checkins/{checkin_id}/wizard/next", response_model=WizardView)
async def wizard_next(
    checkin_id: str,
    store: WizardStore = Depends(get_wizard_store),
    user: UserInfo = Depends(RequireAnyAuth),
):
    wizard = _own_wizard(store, checkin_id, user)
    return _wizard_action(wizard, wizard.next)


@router.post("/checkins/{checkin_id}/wizard/previous", response_model=WizardView)
async def wizard_previous(
    checkin_id: str,
    store: WizardStore = Depends(get_wizard_store),
    user: UserInfo = Depends(RequireAnyAuth),
):
    wizard = _own_wizard(store, checkin_id, user)
    return _wizard_action(wizard, wizard.previous)


@router.put("/checkins/{checkin_id}/wizard/observations", response_model=WizardView)
async def wizard_observations(
    checkin_id: str,
    body: WizardObservations,
    store: WizardStore = Depends(get_wizard_store),
    user: UserInfo = Depends(RequireAnyAuth),
):
    wizard = _own_wizard(store, checkin_id, user)
    return _wizard_action(wizard, wizard.set_observations, body.observations)


@router.post("/checkins/{checkin_id}/wizard/finish", response_model=WizardView)
async def wizard_finish(
    checkin_id: str,
    db: AsyncSession = Depends(get_db),
    store: WizardStore = Depends(get_wizard_store),
    user: UserInfo = Depends(RequireAnyAuth),
):
    """
    Завершить осмотр: одна попытка записи на вызов.
    Ошибка записи откатывает транзакцию и возвращает мастер на итоговый шаг с текстом ошибки.
    """
    wizard = _own_wizard(store, checkin_id, user)
    try:
        submission = wizard.begin_submit()
    except WizardError as e:
        raise HTTPException(status_code=409, detail=str(e))
    try:
        checklist = await checklist_service.submit_checklist(db, submission)
        await db.commit()
    except ChecklistError as e:
        await db.rollback()
        wizard.fail(str(e))
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Чек-лист по заезду %s не сохранён: %s", checkin_id, e)
        wizard.fail("Не удалось сохранить осмотр. Повторите попытку.")
        raise HTTPException(status_code=500, detail=wizard.error)
    except Exception:
        await db.rollback()
        logger.exception("Чек-лист по заезду %s не сохранён", checkin_id)
        wizard.fail("Не удалось сохранить осмотр. Повторите попытку.")
        raise HTTPException(status_code=500, detail=wizard.error)
    wizard.complete(checklist.id)
    view = _wizard_view(wizard)
    store.discard(checkin_id)
    return view
