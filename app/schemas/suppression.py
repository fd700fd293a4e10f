# app/schemas/suppression.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class SuppressionCreate(BaseModel):
    type: Literal["email", "domain"]
    value: str = Field(..., min_length=1, max_length=255)

    @field_validator("value")
    @classmethod
    def normalize_value(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="after")
    def check_shape(self):
        if not self.value:
            raise ValueError("value must not be blank")
        if self.type == "email" and "@" not in self.value:
            raise ValueError("email suppression value must contain '@'")
        if self.type == "domain" and "@" in self.value:
            raise ValueError("domain suppression value must not contain '@'")
        return self


class SuppressionResponse(BaseModel):
    id: str
    type: str
    value: str
    created_at: datetime

    model_config = {"from_attributes": True}
