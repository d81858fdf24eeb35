"""
RBAC: роль × ресурс, плюс декларативная таблица маршрутов клиента.
Все проверки доступа (API и навигация) читают только эти две таблицы.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from machlog.models.profile import ProfileRole


class Resource(str, Enum):
    """Ресурсы для проверки доступа."""
    INSPECTION = "INSPECTION"     # сканер, карточка машины, чек-лист
    MACHINES = "MACHINES"         # реестр техники, QR-метки
    USERS = "USERS"               # профили и регистрация


RESOURCE_ROLES = {
    Resource.INSPECTION: [ProfileRole.OPERATOR, ProfileRole.TECHNICIAN, ProfileRole.ADMIN],
    Resource.MACHINES: [ProfileRole.TECHNICIAN, ProfileRole.ADMIN],
    Resource.USERS: [ProfileRole.ADMIN],
}


class SessionState(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


LOGIN_PATH = "/login"
HOME_PATH = "/"


@dataclass(frozen=True)
class RouteRule:
    pattern: str
    public: bool = False
    resource: Optional[Resource] = None  # None и не public: достаточно входа

    @property
    def regex(self) -> "re.Pattern[str]":
        return _compile(self.pattern)

    def matches(self, path: str) -> bool:
        return self.regex.fullmatch(path) is not None


def _compile(pattern: str) -> "re.Pattern[str]":
    parts = []
    for segment in pattern.strip("/").split("/"):
        if segment.startswith(":"):
            parts.append(r"[^/]+")
        else:
            parts.append(re.escape(segment))
    return re.compile("/" + "/".join(p for p in parts if p))


ROUTE_RULES: List[RouteRule] = [
    RouteRule("/login", public=True),
    RouteRule("/register", resource=Resource.USERS),
    RouteRule("/"),
    RouteRule("/machines", resource=Resource.MACHINES),
    RouteRule("/operator"),
    RouteRule("/machine/:scanToken"),
    RouteRule("/users", resource=Resource.USERS),
    RouteRule("/checklist/:checkinId"),
]


@dataclass(frozen=True)
class RouteDecision:
    action: str  # "render" | "redirect" | "wait"
    location: Optional[str] = None


def _parse_role(role: Optional[str]) -> Optional[ProfileRole]:
    if role is None:
        return None
    try:
        return ProfileRole(role)
    except ValueError:
        return None


def can_access_resource(role: Optional[str], resource: Resource) -> bool:
    """Проверка: есть ли у роли доступ к ресурсу."""
    r = _parse_role(role)
    if r is None:
        return False
    return r in RESOURCE_ROLES.get(resource, [])


def can_manage_machines(role: Optional[str]) -> bool:
    return can_access_resource(role, Resource.MACHINES)


def can_manage_users(role: Optional[str]) -> bool:
    return can_access_resource(role, Resource.USERS)


def find_rule(path: str) -> Optional[RouteRule]:
    normalized = "/" + path.strip().strip("/") if path.strip() not in ("", "/") else "/"
    for rule in ROUTE_RULES:
        if rule.matches(normalized):
            return rule
    return None


def evaluate_route(path: str, state: SessionState, role: Optional[str] = None) -> RouteDecision:
    """
    Решение роутера для пути клиента: пока сессия грузится, ждать;
    без входа на /login; роль не проходит правило, на /; иначе показать.
    Неизвестный путь считается недоступным.
    """
    rule = find_rule(path)
    if rule is not None and rule.public:
        return RouteDecision("render")
    if state == SessionState.LOADING:
        return RouteDecision("wait")
    if state == SessionState.UNAUTHENTICATED:
        return RouteDecision("redirect", LOGIN_PATH)
    if rule is None:
        return RouteDecision("redirect", HOME_PATH)
    if rule.resource is not None and not can_access_resource(role, rule.resource):
        return RouteDecision("redirect", HOME_PATH)
    return RouteDecision("render")


def get_menu_items(role: str) -> List[dict]:
    """Пункты навигации для роли. Каждый пункт: id, label, href, action (опционально), divider."""
    r = _parse_role(role)
    if r is None:
        return []

    items = []

    if can_access_resource(role, Resource.INSPECTION):
        items.append({
            "id": "operator",
            "label": "Сканировать машину",
            "href": "/operator",
        })
    if can_manage_machines(role):
        items.append({
            "id": "machines",
            "label": "Техника",
            "href": "/machines",
        })
    if can_manage_users(role):
        items.append({
            "id": "users",
            "label": "Пользователи",
            "href": "/users",
        })
        items.append({
            "id": "register",
            "label": "Новый пользователь",
            "href": "/register",
        })

    items.append({"id": "_div", "label": "", "href": "", "divider": True})
    items.append({
        "id": "logout",
        "label": "Выйти",
        "href": LOGIN_PATH,
        "action": "logout",
    })
    return items
