"""Пошаговый мастер осмотра без БД."""
import pytest

from machlog.models import ChecklistQuestion, ChecklistStatus, ItemStatus
from machlog.services.checklist_service import (
    ResponsesMismatch,
    aggregate_status,
    check_responses_cover,
    ItemResponse,
)
from machlog.services.checklist_wizard import (
    ChecklistWizard,
    WizardError,
    WizardState,
    WizardStore,
)


def _questions(n):
    return [ChecklistQuestion(id=f"q{i}", question=f"Вопрос {i}", category="Общее") for i in range(n)]


def _wizard(n=3):
    w = ChecklistWizard("checkin-1", "user-1")
    w.load(_questions(n))
    return w


def test_load_defaults_every_answer_to_ok():
    w = _wizard(3)
    assert w.state == WizardState.STEPPING
    assert w.index == 0
    assert w.current_question.id == "q0"
    assert all(r.status == ItemStatus.PASS and r.notes == "" for r in w.responses.values())
    assert not w.can_go_back


def test_no_questions_goes_straight_to_summary():
    w = _wizard(0)
    assert w.state == WizardState.SUMMARY
    assert w.current_question is None
    assert not w.can_go_back
    submission = w.begin_submit()
    assert submission.responses == []
    assert submission.question_ids == []


def test_next_saturates_at_summary():
    w = _wizard(2)
    w.next()
    w.next()
    assert w.state == WizardState.SUMMARY
    assert w.index == 2
    with pytest.raises(WizardError):
        w.next()
    assert w.index == 2


def test_previous_only_when_available():
    w = _wizard(2)
    with pytest.raises(WizardError):
        w.previous()
    w.next()
    w.next()
    assert w.can_go_back
    w.previous()
    assert w.state == WizardState.STEPPING
    assert w.current_question.id == "q1"


def test_answers_survive_navigation():
    w = _wizard(3)
    w.choose(ItemStatus.FAIL)
    w.set_note("течь масла")
    w.next()
    w.choose(ItemStatus.WARNING)
    w.choose(ItemStatus.PASS)
    w.previous()
    assert w.current_response.status == ItemStatus.FAIL
    assert w.current_response.notes == "течь масла"
    w.next()
    assert w.current_response.status == ItemStatus.PASS


def test_observations_only_on_summary():
    w = _wizard(1)
    with pytest.raises(WizardError):
        w.set_observations("рано")
    w.next()
    w.set_observations("всё в порядке")
    assert w.observations == "всё в порядке"


def test_submit_is_single_shot():
    w = _wizard(2)
    w.next()
    w.next()
    submission = w.begin_submit()
    assert w.state == WizardState.SUBMITTING
    assert [r.question_id for r in submission.responses] == ["q0", "q1"]
    with pytest.raises(WizardError):
        w.begin_submit()
    with pytest.raises(WizardError):
        w.previous()


def test_failure_returns_to_summary_with_answers_intact():
    w = _wizard(1)
    w.choose(ItemStatus.WARNING)
    w.next()
    w.begin_submit()
    w.fail("Нет связи")
    assert w.state == WizardState.SUMMARY
    assert w.error == "Нет связи"
    assert w.responses["q0"].status == ItemStatus.WARNING
    w.begin_submit()
    assert w.error is None
    w.complete("checklist-1")
    assert w.state == WizardState.DONE
    assert w.next_path == "/operator"
    with pytest.raises(WizardError):
        w.fail("поздно")


def test_store():
    store = WizardStore()
    w = store.put(_wizard(1))
    assert store.get("checkin-1") is w
    assert len(store) == 1
    store.discard("checkin-1")
    store.discard("checkin-1")
    assert store.get("checkin-1") is None


def test_store_purges_idle_drafts():
    now = [0.0]
    store = WizardStore(max_age=60, clock=lambda: now[0])
    store.put(ChecklistWizard("checkin-1", "user-1"))
    store.put(ChecklistWizard("checkin-2", "user-1"))
    now[0] = 50
    assert store.get("checkin-2") is not None
    now[0] = 100
    assert store.get("checkin-1") is None
    assert len(store) == 1
    now[0] = 111
    assert store.purge() == 1
    assert len(store) == 0


@pytest.mark.parametrize("statuses, expected", [
    ([], ChecklistStatus.NORMAL),
    ([ItemStatus.PASS, ItemStatus.PASS], ChecklistStatus.NORMAL),
    ([ItemStatus.PASS, ItemStatus.WARNING], ChecklistStatus.ISSUE_REPORTED),
    (["fail"], ChecklistStatus.ISSUE_REPORTED),
])
def test_aggregate_status(statuses, expected):
    assert aggregate_status(statuses) == expected


def test_responses_must_cover_question_set():
    check_responses_cover([ItemResponse("a"), ItemResponse("b")], ["b", "a"])
    with pytest.raises(ResponsesMismatch):
        check_responses_cover([ItemResponse("a")], ["a", "b"])
    with pytest.raises(ResponsesMismatch):
        check_responses_cover([ItemResponse("a"), ItemResponse("a")], ["a"])
    with pytest.raises(ResponsesMismatch):
        check_responses_cover([ItemResponse("a"), ItemResponse("c")], ["a"])
