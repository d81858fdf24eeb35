"""Сканер меток: разбор содержимого, выбор камеры, жизненный цикл захвата."""
import json
import threading
import uuid

import pytest

from machlog.services.qr_service import SCAN_PAYLOAD_TYPE, extract_scan_token
from machlog.services.scanner import (
    CAMERA_ERROR_MESSAGE,
    INVALID_CODE_MESSAGE,
    NO_CAMERA_MESSAGE,
    CameraDevice,
    CameraUnavailable,
    QRScanner,
    list_video_devices,
    pick_device,
)

TOKEN = "3f2b8c1e-9a4d-4e5f-8b6a-1c2d3e4f5a6b"


class FakeCapture:
    def __init__(self, frames, opened=True):
        self.frames = list(frames)
        self.opened = opened
        self.released = False

    def isOpened(self):
        return self.opened

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self):
        self.released = True


class FakeDetector:
    """Кадр здесь уже распознанный текст (или None)."""

    def detectAndDecode(self, frame):
        return frame or "", None, None


def _scanner(frames, opened=True, devices=None):
    found = []
    capture = FakeCapture(frames, opened=opened)
    scanner = QRScanner(
        on_scan=found.append,
        devices=devices if devices is not None else [CameraDevice(0, "Integrated Camera")],
        capture_factory=lambda index: capture,
        detector=FakeDetector(),
        upscale=(),
    )
    return scanner, capture, found


@pytest.mark.parametrize("text, expected", [
    ("a1b2c3d4-0000-4000-8000-000000000000", "a1b2c3d4-0000-4000-8000-000000000000"),
    ("not-a-uuid", None),
    ("a1b2c3d4-0000-4000-8000-00000000000", None),
    (TOKEN, TOKEN),
    (TOKEN.upper(), TOKEN),
    (f"  {TOKEN}\n", TOKEN),
    (json.dumps({"type": SCAN_PAYLOAD_TYPE, "id": TOKEN, "code": "EXC-01"}), TOKEN),
    (json.dumps({"type": "other", "id": TOKEN}), None),
    (json.dumps({"type": SCAN_PAYLOAD_TYPE, "id": 42}), None),
    ('{"type": ', None),
    ("https://example.com", None),
    (TOKEN + "0", None),
    ("", None),
    (None, None),
])
def test_extract_scan_token(text, expected):
    assert extract_scan_token(text) == expected


def test_any_uuid_is_accepted():
    for _ in range(20):
        token = str(uuid.uuid4())
        assert extract_scan_token(token) == token


def test_pick_prefers_rear_camera():
    devices = [CameraDevice(0, "Front Camera"), CameraDevice(2, "Back Camera")]
    assert pick_device(devices).index == 2
    assert pick_device([CameraDevice(1, "USB Cam")]).index == 1
    with pytest.raises(CameraUnavailable) as e:
        pick_device([])
    assert str(e.value) == NO_CAMERA_MESSAGE


def test_list_devices_from_sysfs(tmp_path):
    for name, label in (("video0", "Front"), ("video1", "Rear Camera\n")):
        (tmp_path / name).mkdir()
        (tmp_path / name / "name").write_text(label, encoding="utf-8")
    (tmp_path / "videoX").mkdir()
    devices = list_video_devices(sysfs_root=tmp_path)
    assert devices == [CameraDevice(0, "Front"), CameraDevice(1, "Rear Camera")]


def test_list_devices_falls_back_to_probe(tmp_path):
    captures = {0: FakeCapture([], opened=True), 1: FakeCapture([], opened=False)}
    devices = list_video_devices(
        capture_factory=lambda i: captures.get(i, FakeCapture([], opened=False)),
        sysfs_root=tmp_path / "missing",
        max_index=3,
    )
    assert [d.index for d in devices] == [0]
    assert all(c.released for c in captures.values())


def test_valid_scan_is_forwarded_once():
    scanner, capture, found = _scanner([None, TOKEN, TOKEN])
    assert scanner.run() == TOKEN
    assert found == [TOKEN]
    assert capture.released
    assert not scanner.is_open
    assert scanner.process_frame(TOKEN) == TOKEN
    assert found == [TOKEN]


def test_invalid_code_sets_error_and_keeps_scanning():
    payload = json.dumps({"type": SCAN_PAYLOAD_TYPE, "id": TOKEN})
    scanner, _capture, found = _scanner(["hello", payload])
    scanner.open()
    assert scanner.process_frame("hello") is None
    assert scanner.error == INVALID_CODE_MESSAGE
    assert found == []
    scanner.run()
    assert found == [TOKEN]
    assert scanner.error is None


def test_end_of_stream_releases_camera():
    scanner, capture, found = _scanner([None, "junk"])
    assert scanner.run() is None
    assert found == []
    assert capture.released
    assert scanner.error == INVALID_CODE_MESSAGE
    scanner.clear_error()
    assert scanner.error is None


def test_cancel_releases_camera():
    cancel = threading.Event()
    cancel.set()
    scanner, capture, found = _scanner([TOKEN])
    assert scanner.run(cancel) is None
    assert found == []
    assert capture.released


def test_max_frames():
    scanner, capture, _found = _scanner([None] * 10)
    scanner.run(max_frames=3)
    assert len(capture.frames) == 7
    assert capture.released


def test_callback_error_still_releases_camera():
    capture = FakeCapture([TOKEN])

    def boom(token):
        raise RuntimeError("навигация упала")

    scanner = QRScanner(
        on_scan=boom,
        devices=[CameraDevice(0, "cam")],
        capture_factory=lambda index: capture,
        detector=FakeDetector(),
    )
    with pytest.raises(RuntimeError):
        scanner.run()
    assert capture.released


def test_context_manager_releases_camera():
    scanner, capture, _found = _scanner([])
    with scanner as s:
        assert s.is_open
    assert capture.released
    assert not scanner.is_open


def test_no_camera():
    scanner, _capture, _found = _scanner([], devices=[])
    with pytest.raises(CameraUnavailable):
        scanner.open()
    assert scanner.error == NO_CAMERA_MESSAGE


def test_camera_denied():
    scanner, capture, _found = _scanner([], opened=False)
    with pytest.raises(CameraUnavailable):
        scanner.run()
    assert scanner.error == CAMERA_ERROR_MESSAGE
    assert capture.released
    assert not scanner.is_open
