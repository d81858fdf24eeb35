"""
Киоск сканирования: камера на посту осмотра.
Ждёт QR-метку, по токену находит машину через API, открывает заезд и печатает путь к чек-листу.
Запуск: MACHLOG_API_URL=http://localhost:8000 MACHLOG_EMAIL=... MACHLOG_PASSWORD=... machlog-kiosk
"""
import logging
import os
import threading
from typing import Optional

import httpx

from machlog.services.scanner import CameraUnavailable, QRScanner

logging.basicConfig(
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

API_BASE_URL = os.environ.get("MACHLOG_API_URL", "http://localhost:8000")
KIOSK_EMAIL = os.environ.get("MACHLOG_EMAIL", "")
KIOSK_PASSWORD = os.environ.get("MACHLOG_PASSWORD", "")


class KioskError(Exception):
    pass


class SessionExpired(KioskError):
    pass


def _detail(r: httpx.Response) -> str:
    if r.headers.get("content-type", "").startswith("application/json"):
        return str(r.json().get("detail", r.text))
    return r.text


def login(client: httpx.Client, email: str, password: str) -> str:
    r = client.post("/auth/login", data={"username": email, "password": password})
    if r.status_code != 200:
        raise KioskError(f"Вход не выполнен: {_detail(r)}")
    return r.json()["access_token"]


def start_inspection(client: httpx.Client, token: str, scan_token: str) -> dict:
    """Машина по токену метки → новый заезд. Возвращает ответ API с путём к чек-листу."""
    headers = {"Authorization": f"Bearer {token}"}
    r = client.get(f"/machines/scan/{scan_token}", headers=headers)
    if r.status_code == 401:
        raise SessionExpired("Сессия киоска истекла")
    if r.status_code == 404:
        raise KioskError("Машина с такой меткой не найдена")
    if r.status_code != 200:
        raise KioskError(f"Ошибка API: {_detail(r)}")
    machine = r.json()
    r = client.post(f"/machines/scan/{scan_token}/checkins", headers=headers)
    if r.status_code == 401:
        raise SessionExpired("Сессия киоска истекла")
    if r.status_code != 201:
        raise KioskError(f"Заезд не создан: {_detail(r)}")
    checkin = r.json()
    logger.info("Машина %s (%s): заезд %s", machine["code"], machine["name"], checkin["id"])
    return checkin



class KioskSession:
    """Вход под учётной записью киоска; при истёкшем токене один повторный вход и повтор запроса."""

    def __init__(self, client: httpx.Client, email: str, password: str):
        self.client = client
        self.email = email
        self.password = password
        self.token: Optional[str] = None

    def login(self) -> str:
        self.token = login(self.client, self.email, self.password)
        return self.token

    def start_inspection(self, scan_token: str) -> dict:
        if self.token is None:
            self.login()
        try:
            return start_inspection(self.client, self.token, scan_token)
        except SessionExpired:
            logger.info("Токен киоска истёк, повторный вход")
            self.login()
            return start_inspection(self.client, self.token, scan_token)


def scan_once(cancel: Optional[threading.Event] = None, scanner_factory=QRScanner) -> Optional[str]:
    """Один скан с камеры. Камера освобождается при любом исходе."""
    found = []
    scanner = scanner_factory(on_scan=found.append)
    try:
        scanner.run(cancel)
    except CameraUnavailable as e:
        logger.error("Камера: %s", e)
        return None
    return found[0] if found else None


def main() -> None:
    if not KIOSK_EMAIL or not KIOSK_PASSWORD:
        raise SystemExit("Задайте MACHLOG_EMAIL и MACHLOG_PASSWORD в окружении")
    with httpx.Client(base_url=API_BASE_URL, timeout=10.0) as client:
        session = KioskSession(client, KIOSK_EMAIL, KIOSK_PASSWORD)
        session.login()
        logger.info("Киоск запущен, API %s", API_BASE_URL)
        while True:
            scan_token = scan_once()
            if scan_token is None:
                break
            try:
                checkin = session.start_inspection(scan_token)
            except KioskError as e:
                logger.warning("%s", e)
                continue
            except httpx.HTTPError as e:
                logger.exception("Ошибка связи с сервером: %s", e)
                continue
            print(checkin.get("next") or f"/checklist/{checkin['id']}", flush=True)


if __name__ == "__main__":
    main()
