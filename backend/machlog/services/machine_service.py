import uuid
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from machlog.core.logging_config import get_logger
from machlog.models import Checkin, Machine
from machlog.schemas.machine import MachineCreate, MachineResponse, MachineUpdate

logger = get_logger(__name__)

REQUIRED_FIELDS = ("code", "name", "location")


class MachineInUse(Exception):
    """Машину нельзя удалить: на неё есть заезды."""


def machine_to_response(m: Machine) -> MachineResponse:
    return MachineResponse(
        id=m.id,
        code=m.code,
        name=m.name,
        brand=m.brand,
        model=m.model,
        serial_number=m.serial_number,
        year_of_manufacture=m.year_of_manufacture,
        location=m.location,
        description=m.description,
        main_image_url=m.main_image_url,
        qr_code_uuid=m.qr_code_uuid,
        created_at=m.created_at.isoformat() if m.created_at else "",
    )


async def _token_taken(db: AsyncSession, token: str) -> bool:
    r = await db.execute(select(Machine.id).where(Machine.qr_code_uuid == token))
    return r.scalar_one_or_none() is not None


async def mint_scan_token(db: AsyncSession, machine_id: str) -> str:
    """Новый случайный токен метки: не совпадает с первичным ключом и с токенами других машин."""
    while True:
        token = str(uuid.uuid4())
        if token != machine_id and not await _token_taken(db, token):
            return token


async def list_machines(db: AsyncSession, q: Optional[str] = None) -> List[Machine]:
    stmt = select(Machine).order_by(Machine.name, Machine.code)
    term = (q or "").strip()
    if term:
        stmt = stmt.where(
            or_(
                Machine.name.icontains(term, autoescape=True),
                Machine.code.icontains(term, autoescape=True),
                Machine.location.icontains(term, autoescape=True),
            )
        )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_machine(db: AsyncSession, machine_id: str) -> Optional[Machine]:
    result = await db.execute(select(Machine).where(Machine.id == machine_id))
    return result.scalar_one_or_none()


async def get_machine_by_scan_token(db: AsyncSession, scan_token: str) -> Optional[Machine]:
    result = await db.execute(select(Machine).where(Machine.qr_code_uuid == scan_token.lower()))
    return result.scalar_one_or_none()


async def create_machine(db: AsyncSession, data: MachineCreate) -> Machine:
    machine_id = str(uuid.uuid4())
    machine = Machine(
        id=machine_id,
        qr_code_uuid=await mint_scan_token(db, machine_id),
        **data.model_dump(),
    )
    db.add(machine)
    await db.flush()
    await db.refresh(machine)
    logger.info("Машина создана: id=%s code=%s", machine.id, machine.code)
    return machine


async def update_machine(db: AsyncSession, machine: Machine, data: MachineUpdate) -> Machine:
    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(machine, field, value)
    await db.flush()
    await db.refresh(machine)
    logger.info("Машина обновлена: id=%s поля=%s", machine.id, sorted(changes))
    return machine


async def delete_machine(db: AsyncSession, machine: Machine) -> None:
    r = await db.execute(select(func.count(Checkin.id)).where(Checkin.machine_id == machine.id))
    if int(r.scalar_one() or 0) > 0:
        raise MachineInUse(machine.id)
    await db.delete(machine)
    await db.flush()
    logger.info("Машина удалена: id=%s code=%s", machine.id, machine.code)
