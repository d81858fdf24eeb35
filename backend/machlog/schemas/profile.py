from typing import Optional

from pydantic import BaseModel, Field

from machlog.models import ProfileRole


class ProfileResponse(BaseModel):
    id: str
    role: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    created_at: str


class ProfileUpdate(BaseModel):
    """Форма редактирования пользователя: только имя и роль."""
    full_name: Optional[str] = None
    role: Optional[ProfileRole] = None


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1, max_length=255)
    role: ProfileRole = ProfileRole.OPERATOR
