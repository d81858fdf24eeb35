"""Проверка содержимого QR-метки: текст, распознанный на клиенте, или кадр с камеры."""
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from machlog.api.auth import RequireAnyAuth, UserInfo
from machlog.core.logging_config import get_logger
from machlog.services.qr_service import decode_image, extract_scan_token
from machlog.services.scanner import INVALID_CODE_MESSAGE

router = APIRouter(prefix="/scan", tags=["scan"])
logger = get_logger(__name__)

MAX_FRAME_BYTES = 5 * 1024 * 1024


class ScanText(BaseModel):
    text: str


class ScanResult(BaseModel):
    scan_token: str
    next: str


def _result(text: str) -> ScanResult:
    token = extract_scan_token(text)
    if token is None:
        logger.info("Скан отклонён: %r", text[:64])
        raise HTTPException(status_code=422, detail=INVALID_CODE_MESSAGE)
    return ScanResult(scan_token=token, next=f"/machine/{token}")


@router.post("", response_model=ScanResult)
async def scan_text(body: ScanText, _user: UserInfo = Depends(RequireAnyAuth)):
    return _result(body.text)


@router.post("/image", response_model=ScanResult)
async def scan_image(
    file: UploadFile = File(...),
    _user: UserInfo = Depends(RequireAnyAuth),
):
    data = await file.read(MAX_FRAME_BYTES + 1)
    if len(data) > MAX_FRAME_BYTES:
        raise HTTPException(status_code=413, detail="Слишком большой кадр")
    try:
        text = decode_image(data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if text is None:
        raise HTTPException(status_code=422, detail="QR-код на кадре не найден")
    return _result(text)
