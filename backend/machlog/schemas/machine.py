"""Форма машины: плоский набор полей → payload, пустые необязательные поля становятся null."""
from typing import Optional

from pydantic import BaseModel, Field, field_validator

OPTIONAL_TEXT_FIELDS = ("brand", "model", "serial_number", "description", "main_image_url")


class MachineForm(BaseModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    year_of_manufacture: Optional[int] = Field(default=None, ge=1800, le=2200)
    description: Optional[str] = None
    main_image_url: Optional[str] = None

    @field_validator(*OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("year_of_manufacture", mode="before")
    @classmethod
    def _blank_year_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class MachineCreate(MachineForm):
    code: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    location: str = Field(..., min_length=1, max_length=255)


class MachineUpdate(MachineForm):
    """Правка: меняются только переданные поля. Токен метки через форму не меняется."""
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)


class MachineResponse(BaseModel):
    id: str
    code: str
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    year_of_manufacture: Optional[int] = None
    location: str
    description: Optional[str] = None
    main_image_url: Optional[str] = None
    qr_code_uuid: str
    created_at: str
