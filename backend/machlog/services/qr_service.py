"""
QR-метки машин: единый формат содержимого для генератора и сканера,
растровая отрисовка в PNG и страница для печати.

Содержимое метки: JSON {"type": "machlog_machine", "id": <токен метки>, "code": <код машины>}.
В поле id лежит токен метки (qr_code_uuid), а не первичный ключ.
"""
import base64
import html
import json
import re
from typing import Optional, Tuple

import cv2
import numpy as np

from machlog.models import Machine

SCAN_PAYLOAD_TYPE = "machlog_machine"
DEFAULT_PIXEL_SIZE = 200
QUIET_ZONE_MODULES = 4
# Повторные проходы детектора на увеличенной копии: кадр камеры и загруженный снимок.
FRAME_UPSCALE = (2,)
IMAGE_UPSCALE = (2, 3)

SCAN_TOKEN_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_scan_token(text: Optional[str]) -> bool:
    return bool(text) and SCAN_TOKEN_PATTERN.fullmatch(text) is not None


def encode_scan_payload(machine: Machine) -> str:
    return json.dumps(
        {"type": SCAN_PAYLOAD_TYPE, "id": machine.qr_code_uuid, "code": machine.code},
        ensure_ascii=False,
        separators=(",", ":"),
    )


def extract_scan_token(text: Optional[str]) -> Optional[str]:
    """
    Токен метки из распознанного текста или None.
    Понимает тегированный JSON и голый идентификатор (метки, напечатанные до тегированного формата).
    """
    if not text:
        return None
    raw = text.strip()
    if raw.startswith("{"):
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(data, dict) or data.get("type") != SCAN_PAYLOAD_TYPE:
            return None
        candidate = data.get("id")
        if not isinstance(candidate, str):
            return None
        raw = candidate
    if not is_scan_token(raw):
        return None
    return raw.lower()


def render_qr_matrix(payload: str, size: int = DEFAULT_PIXEL_SIZE) -> np.ndarray:
    """Изображение size×size (оттенки серого): целое число пикселей на модуль, белое поле вокруг."""
    encoder = cv2.QRCodeEncoder.create()
    modules = encoder.encode(payload)
    if modules is None or modules.size == 0:
        raise ValueError("QR-код не сформирован")
    if modules.ndim == 3:
        modules = cv2.cvtColor(modules, cv2.COLOR_BGR2GRAY)
    modules = cv2.copyMakeBorder(
        modules,
        QUIET_ZONE_MODULES, QUIET_ZONE_MODULES, QUIET_ZONE_MODULES, QUIET_ZONE_MODULES,
        cv2.BORDER_CONSTANT,
        value=255,
    )
    side = modules.shape[0]
    scale = max(1, size // side)
    scaled = cv2.resize(modules, (side * scale, side * scale), interpolation=cv2.INTER_NEAREST)
    pad = size - scaled.shape[0]
    if pad <= 0:
        return cv2.resize(scaled, (size, size), interpolation=cv2.INTER_NEAREST)
    before, after = pad // 2, pad - pad // 2
    return cv2.copyMakeBorder(scaled, before, after, before, after, cv2.BORDER_CONSTANT, value=255)


def render_qr_png(payload: str, size: int = DEFAULT_PIXEL_SIZE) -> bytes:
    ok, buf = cv2.imencode(".png", render_qr_matrix(payload, size))
    if not ok:
        raise ValueError("Не удалось закодировать PNG")
    return buf.tobytes()


def decode_image(data: bytes) -> Optional[str]:
    """Текст первого QR-кода на изображении или None. Нечитаемое изображение: ValueError."""
    arr = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(arr, cv2.IMREAD_COLOR) if arr.size else None
    if image is None:
        raise ValueError("Файл не является изображением")
    return decode_frame(image, upscale=IMAGE_UPSCALE)


def decode_frame(frame: np.ndarray, detector=None, upscale: Tuple[int, ...] = FRAME_UPSCALE) -> Optional[str]:
    """
    Проход детектора по кадру; если код не найден, повтор на увеличенных копиях.
    Модули в 4 px (метка 200×200) детектор OpenCV часто не находит с первого раза.
    """
    detector = detector or cv2.QRCodeDetector()
    text, _points, _straight = detector.detectAndDecode(frame)
    if text:
        return text
    for factor in upscale:
        scaled = cv2.resize(frame, None, fx=factor, fy=factor, interpolation=cv2.INTER_NEAREST)
        text, _points, _straight = detector.detectAndDecode(scaled)
        if text:
            return text
    return None


_PRINT_TEMPLATE = """<!DOCTYPE html>
<html lang="ru">
<head>
<meta charset="utf-8">
<title>QR {code}</title>
<style>
  body {{ font-family: sans-serif; text-align: center; margin: 2rem; }}
  .label {{ display: inline-block; border: 1px solid #ddd; padding: 1.5rem; }}
  .code {{ font-size: 1.5rem; font-weight: bold; margin-top: .75rem; }}
  .meta {{ color: #666; font-size: .8rem; }}
  @media print {{
    .actions {{ display: none; }}
    .label {{ border: none; }}
  }}
</style>
</head>
<body>
<div class="label">
  <img src="data:image/png;base64,{png}" width="{size}" height="{size}" alt="QR {code}">
  <div class="code">{code}</div>
  <div>{name}</div>
  <div class="meta">{location}</div>
  <div class="meta">ID: {scan_token}</div>
</div>
<div class="actions">
  <button type="button" onclick="window.print()">Печать</button>
  <button type="button" onclick="window.close()">Закрыть</button>
</div>
</body>
</html>
"""


def render_print_page(machine: Machine, size: int = DEFAULT_PIXEL_SIZE) -> str:
    png = render_qr_png(encode_scan_payload(machine), size)
    return _PRINT_TEMPLATE.format(
        code=html.escape(machine.code),
        name=html.escape(machine.name),
        location=html.escape(machine.location),
        scan_token=html.escape(machine.qr_code_uuid),
        png=base64.b64encode(png).decode("ascii"),
        size=size,
    )
