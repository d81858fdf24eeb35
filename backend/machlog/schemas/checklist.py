from typing import List, Optional

from pydantic import BaseModel, Field

from machlog.models import ItemStatus


class QuestionResponse(BaseModel):
    id: str
    question: str
    category: str


class ItemAnswer(BaseModel):
    question_id: str
    status: ItemStatus = ItemStatus.PASS
    notes: str = ""


class ChecklistSubmit(BaseModel):
    """Осмотр целиком одним запросом: ответы ровно на активный набор вопросов."""
    observations: str = ""
    items: List[ItemAnswer]


class ChecklistItemResponse(BaseModel):
    id: str
    question_id: str
    status: str
    notes: Optional[str] = None


class ChecklistResponse(BaseModel):
    id: str
    checkin_id: str
    machine_id: str
    user_id: str
    observations: Optional[str] = None
    status: str
    created_at: str
    items: List[ChecklistItemResponse] = []


class CheckinResponse(BaseModel):
    id: str
    user_id: str
    machine_id: str
    machine_code: Optional[str] = None
    machine_name: Optional[str] = None
    shift_start: str
    created_at: str
    checklist_status: Optional[str] = None
    next: Optional[str] = None


class WizardAnswer(BaseModel):
    status: Optional[ItemStatus] = None
    notes: Optional[str] = None


class WizardObservations(BaseModel):
    observations: str = Field(default="", max_length=4000)


class WizardView(BaseModel):
    checkin_id: str
    state: str
    index: int
    total: int
    can_go_back: bool
    question: Optional[QuestionResponse] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    observations: str = ""
    error: Optional[str] = None
    checklist_id: Optional[str] = None
    next: Optional[str] = None
