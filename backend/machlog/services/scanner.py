"""
Сканер QR-меток с камеры.

QRScanner владеет камерой всё время своей жизни: захват в open(), освобождение
в close(), которое вызывается на любом выходе из run() и из блока with
(успешный скан, отмена, конец потока, исключение).
"""
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import cv2

from machlog.core.logging_config import get_logger
from machlog.services.qr_service import FRAME_UPSCALE, decode_frame, extract_scan_token

logger = get_logger(__name__)

V4L_SYSFS = Path("/sys/class/video4linux")
REAR_CAMERA_HINTS = ("back", "rear", "traseira")
MAX_PROBE_INDEX = 4

NO_CAMERA_MESSAGE = "Камера не найдена"
CAMERA_ERROR_MESSAGE = "Ошибка доступа к камере. Проверьте разрешения."
INVALID_CODE_MESSAGE = "Неверный QR-код. Отсканируйте метку машины."


class CameraUnavailable(Exception):
    pass


@dataclass(frozen=True)
class CameraDevice:
    index: int
    label: str


def _sysfs_devices(root: Path) -> List[CameraDevice]:
    devices = []
    if not root.is_dir():
        return devices
    for entry in sorted(root.glob("video*")):
        suffix = entry.name[len("video"):]
        if not suffix.isdigit():
            continue
        name_file = entry / "name"
        label = name_file.read_text(encoding="utf-8", errors="replace").strip() if name_file.is_file() else entry.name
        devices.append(CameraDevice(index=int(suffix), label=label))
    return devices


def _probe_devices(capture_factory, max_index: int) -> List[CameraDevice]:
    devices = []
    for i in range(max_index):
        cap = capture_factory(i)
        try:
            if cap.isOpened():
                devices.append(CameraDevice(index=i, label=f"camera {i}"))
        finally:
            cap.release()
    return devices


def list_video_devices(
    capture_factory=cv2.VideoCapture,
    sysfs_root: Path = V4L_SYSFS,
    max_index: int = MAX_PROBE_INDEX,
) -> List[CameraDevice]:
    """Камеры с человекочитаемыми именами (V4L2), иначе перебор индексов."""
    devices = _sysfs_devices(sysfs_root)
    if devices:
        return devices
    return _probe_devices(capture_factory, max_index)


def pick_device(devices: List[CameraDevice]) -> CameraDevice:
    if not devices:
        raise CameraUnavailable(NO_CAMERA_MESSAGE)
    for device in devices:
        label = device.label.lower()
        if any(hint in label for hint in REAR_CAMERA_HINTS):
            return device
    return devices[0]


class QRScanner:
    def __init__(
        self,
        on_scan: Callable[[str], None],
        devices: Optional[List[CameraDevice]] = None,
        capture_factory=cv2.VideoCapture,
        detector=None,
        upscale: Tuple[int, ...] = FRAME_UPSCALE,
    ):
        self.on_scan = on_scan
        self._devices = devices
        self._capture_factory = capture_factory
        self._detector = detector
        self._upscale = upscale
        self._capture = None
        self.device: Optional[CameraDevice] = None
        self.error: Optional[str] = None
        self.scanned: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> "QRScanner":
        devices = self._devices if self._devices is not None else list_video_devices(self._capture_factory)
        try:
            self.device = pick_device(devices)
        except CameraUnavailable as e:
            self.error = str(e)
            raise
        cap = self._capture_factory(self.device.index)
        if not cap.isOpened():
            cap.release()
            self.error = CAMERA_ERROR_MESSAGE
            raise CameraUnavailable(CAMERA_ERROR_MESSAGE)
        self._capture = cap
        if self._detector is None:
            self._detector = cv2.QRCodeDetector()
        logger.info("Сканер: камера %s (%s)", self.device.index, self.device.label)
        return self

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Сканер: камера освобождена")

    def __enter__(self) -> "QRScanner":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def clear_error(self) -> None:
        self.error = None

    def process_frame(self, frame) -> Optional[str]:
        """Распознать кадр. Первый валидный токен передаётся в on_scan ровно один раз."""
        if self.scanned is not None:
            return self.scanned
        text = decode_frame(frame, self._detector, self._upscale)
        if text is None:
            return None
        token = extract_scan_token(text)
        if token is None:
            self.error = INVALID_CODE_MESSAGE
            logger.info("Сканер: отклонён код %r", text[:64])
            return None
        self.scanned = token
        self.error = None
        self.on_scan(token)
        return token

    def run(self, cancel: Optional[threading.Event] = None, max_frames: Optional[int] = None) -> Optional[str]:
        """Цикл распознавания до скана, отмены или конца потока. Камера освобождается всегда."""
        if not self.is_open:
            self.open()
        frames = 0
        try:
            while cancel is None or not cancel.is_set():
                if max_frames is not None and frames >= max_frames:
                    break
                ok, frame = self._capture.read()
                frames += 1
                if not ok:
                    break
                if self.process_frame(frame) is not None:
                    break
        finally:
            self.close()
        return self.scanned
