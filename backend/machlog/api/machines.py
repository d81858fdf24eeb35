from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from machlog.api.auth import RequireAnyAuth, RequireMachineAccess, UserInfo, get_settings
from machlog.config import Settings
from machlog.core.database import get_db
from machlog.core.logging_config import get_logger
from machlog.models import Checkin, Machine
from machlog.schemas.checklist import CheckinResponse
from machlog.schemas.machine import MachineCreate, MachineResponse, MachineUpdate
from machlog.services import machine_service
from machlog.services.qr_service import encode_scan_payload, render_print_page, render_qr_png

router = APIRouter(prefix="/machines", tags=["machines"])
logger = get_logger(__name__)


async def _get_machine_or_404(db: AsyncSession, machine_id: str) -> Machine:
    machine = await machine_service.get_machine(db, machine_id)
    if not machine:
        raise HTTPException(status_code=404, detail="Машина не найдена")
    return machine


@router.get("", response_model=List[MachineResponse])
async def list_machines(
    q: Optional[str] = Query(None, description="Поиск по названию, коду, месту"),
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireMachineAccess),
):
    machines = await machine_service.list_machines(db, q)
    return [machine_service.machine_to_response(m) for m in machines]


@router.post("", response_model=MachineResponse, status_code=201)
async def create_machine(
    data: MachineCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireMachineAccess),
):
    machine = await machine_service.create_machine(db, data)
    await db.commit()
    return machine_service.machine_to_response(machine)


@router.get("/scan/{scan_token}", response_model=MachineResponse)
async def get_machine_by_scan_token(
    scan_token: str,
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireAnyAuth),
):
    """Карточка машины по токену метки (после сканирования)."""
    machine = await machine_service.get_machine_by_scan_token(db, scan_token)
    if not machine:
        raise HTTPException(status_code=404, detail="Машина не найдена")
    return machine_service.machine_to_response(machine)


@router.post("/scan/{scan_token}/checkins", response_model=CheckinResponse, status_code=201)
async def start_inspection(
    scan_token: str,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireAnyAuth),
):
    """Начать осмотр: заезд с началом смены «сейчас», дальше чек-лист."""
    machine = await machine_service.get_machine_by_scan_token(db, scan_token)
    if not machine:
        raise HTTPException(status_code=404, detail="Машина не найдена")
    checkin = Checkin(user_id=user.id, machine_id=machine.id)
    db.add(checkin)
    await db.commit()
    await db.refresh(checkin)
    logger.info("Заезд %s: машина %s, инспектор %s", checkin.id, machine.code, user.id)
    return CheckinResponse(
        id=checkin.id,
        user_id=checkin.user_id,
        machine_id=machine.id,
        machine_code=machine.code,
        machine_name=machine.name,
        shift_start=checkin.shift_start.isoformat(),
        created_at=checkin.created_at.isoformat(),
        next=f"/checklist/{checkin.id}",
    )


@router.get("/{machine_id}", response_model=MachineResponse)
async def get_machine(
    machine_id: str,
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireMachineAccess),
):
    return machine_service.machine_to_response(await _get_machine_or_404(db, machine_id))


@router.patch("/{machine_id}", response_model=MachineResponse)
async def update_machine(
    machine_id: str,
    data: MachineUpdate,
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireMachineAccess),
):
    machine = await _get_machine_or_404(db, machine_id)
    machine = await machine_service.update_machine(db, machine, data)
    await db.commit()
    return machine_service.machine_to_response(machine)


@router.delete("/{machine_id}")
async def delete_machine(
    machine_id: str,
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireMachineAccess),
):
    machine = await _get_machine_or_404(db, machine_id)
    try:
        await machine_service.delete_machine(db, machine)
    except machine_service.MachineInUse:
        raise HTTPException(status_code=409, detail="У машины есть история осмотров, удаление невозможно")
    await db.commit()
    return {"ok": True}


@router.get("/{machine_id}/qr.png", response_class=Response)
async def get_machine_qr(
    machine_id: str,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _user: UserInfo = Depends(RequireMachineAccess),
):
    machine = await _get_machine_or_404(db, machine_id)
    png = render_qr_png(encode_scan_payload(machine), settings.qr_pixel_size)
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="qr-{machine.id}.png"'},
    )


@router.get("/{machine_id}/qr/print", response_class=HTMLResponse)
async def print_machine_qr(
    machine_id: str,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _user: UserInfo = Depends(RequireMachineAccess),
):
    """Страница метки для печати: кнопки скрыты в режиме печати."""
    machine = await _get_machine_or_404(db, machine_id)
    return HTMLResponse(render_print_page(machine, settings.qr_pixel_size))
