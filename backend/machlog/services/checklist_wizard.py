"""
Пошаговый мастер осмотра.

loading → stepping(0..N-1) → summary(N) → submitting → done;
при ошибке записи обратно в summary с текстом ошибки.
Черновики живут в памяти процесса (WizardStore) и в БД не попадают до завершения.
"""
import enum
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from machlog.core.logging_config import get_logger
from machlog.models import ChecklistQuestion, ItemStatus
from machlog.services.checklist_service import ChecklistSubmission, ItemResponse

logger = get_logger(__name__)

OPERATOR_LANDING = "/operator"


class WizardState(str, enum.Enum):
    LOADING = "loading"
    STEPPING = "stepping"
    SUMMARY = "summary"
    SUBMITTING = "submitting"
    DONE = "done"


ALLOWED_TRANSITIONS: dict[WizardState, list[WizardState]] = {
    WizardState.LOADING: [WizardState.STEPPING, WizardState.SUMMARY],
    WizardState.STEPPING: [WizardState.STEPPING, WizardState.SUMMARY],
    WizardState.SUMMARY: [WizardState.STEPPING, WizardState.SUBMITTING],
    WizardState.SUBMITTING: [WizardState.DONE, WizardState.SUMMARY],
    WizardState.DONE: [],
}


class WizardError(Exception):
    pass


@dataclass(frozen=True)
class WizardQuestion:
    id: str
    question: str
    category: str


class ChecklistWizard:
    def __init__(self, checkin_id: str, inspector_id: str):
        self.checkin_id = checkin_id
        self.inspector_id = inspector_id
        self.state = WizardState.LOADING
        self.questions: List[WizardQuestion] = []
        self.responses: Dict[str, ItemResponse] = {}
        self.index = 0
        self.observations = ""
        self.error: Optional[str] = None
        self.checklist_id: Optional[str] = None

    def _move(self, new: WizardState) -> None:
        if new not in ALLOWED_TRANSITIONS.get(self.state, []):
            raise WizardError(f"Переход {self.state.value} → {new.value} недопустим")
        self.state = new

    def _require(self, *states: WizardState) -> None:
        if self.state not in states:
            raise WizardError(f"Действие недоступно в состоянии {self.state.value}")

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def can_go_back(self) -> bool:
        return self.state in (WizardState.STEPPING, WizardState.SUMMARY) and self.index > 0

    @property
    def current_question(self) -> Optional[WizardQuestion]:
        if self.state != WizardState.STEPPING:
            return None
        return self.questions[self.index]

    @property
    def current_response(self) -> Optional[ItemResponse]:
        q = self.current_question
        return self.responses[q.id] if q else None

    def load(self, questions: List[ChecklistQuestion]) -> None:
        """Зафиксировать набор вопросов; у каждого по умолчанию «норма» и пустая заметка."""
        self._require(WizardState.LOADING)
        self.questions = [WizardQuestion(q.id, q.question, q.category) for q in questions]
        self.responses = {q.id: ItemResponse(question_id=q.id) for q in self.questions}
        self.index = 0
        self._move(WizardState.STEPPING if self.questions else WizardState.SUMMARY)

    def choose(self, status: ItemStatus) -> None:
        self._require(WizardState.STEPPING)
        self.current_response.status = ItemStatus(status)

    def set_note(self, notes: str) -> None:
        self._require(WizardState.STEPPING)
        self.current_response.notes = notes

    def next(self) -> None:
        self._require(WizardState.STEPPING)
        self.index = min(self.index + 1, self.total)
        self._move(WizardState.SUMMARY if self.index == self.total else WizardState.STEPPING)

    def previous(self) -> None:
        if not self.can_go_back:
            raise WizardError("Предыдущего шага нет")
        self.index -= 1
        self._move(WizardState.STEPPING)

    def set_observations(self, observations: str) -> None:
        self._require(WizardState.SUMMARY)
        self.observations = observations

    def begin_submit(self) -> ChecklistSubmission:
        """summary → submitting. Повторный вызов до завершения отклоняется: одна отправка на нажатие."""
        self._require(WizardState.SUMMARY)
        self._move(WizardState.SUBMITTING)
        self.error = None
        return ChecklistSubmission(
            checkin_id=self.checkin_id,
            inspector_id=self.inspector_id,
            responses=[self.responses[q.id] for q in self.questions],
            observations=self.observations,
            question_ids=[q.id for q in self.questions],
        )

    def complete(self, checklist_id: str) -> None:
        self._move(WizardState.DONE)
        self.checklist_id = checklist_id

    def fail(self, message: str) -> None:
        self._move(WizardState.SUMMARY)
        self.error = message

    @property
    def next_path(self) -> Optional[str]:
        return OPERATOR_LANDING if self.state == WizardState.DONE else None


class WizardStore:
    """
    Черновики мастеров по id заезда. Один экземпляр на приложение (app.state.wizards).
    Черновик, к которому не обращались дольше max_age секунд, удаляется при следующем обращении к хранилищу.
    """

    def __init__(self, max_age: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._wizards: Dict[str, ChecklistWizard] = {}
        self._touched: Dict[str, float] = {}
        self._max_age = max_age
        self._clock = clock

    def purge(self) -> int:
        """Удалить просроченные черновики. Возвращает число удалённых."""
        if self._max_age is None:
            return 0
        deadline = self._clock() - self._max_age
        stale = [cid for cid, touched in self._touched.items() if touched < deadline]
        for cid in stale:
            self.discard(cid)
        if stale:
            logger.info("Удалено брошенных черновиков осмотра: %s", len(stale))
        return len(stale)

    def get(self, checkin_id: str) -> Optional[ChecklistWizard]:
        self.purge()
        wizard = self._wizards.get(checkin_id)
        if wizard is not None:
            self._touched[checkin_id] = self._clock()
        return wizard

    def put(self, wizard: ChecklistWizard) -> ChecklistWizard:
        self.purge()
        self._wizards[wizard.checkin_id] = wizard
        self._touched[wizard.checkin_id] = self._clock()
        return wizard

    def discard(self, checkin_id: str) -> None:
        self._wizards.pop(checkin_id, None)
        self._touched.pop(checkin_id, None)

    def __len__(self) -> int:
        return len(self._wizards)
