from datetime import date
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FaceImageIn(CamelModel):
    image_base64: str = Field(min_length=1)
    pose_type: str = Field(min_length=1, max_length=20)
    angle: float | None = None


class FaceRegisterRequest(CamelModel):
    guard_id: UUID
    employee_code: str | None = Field(default=None, max_length=50)
    images: list[FaceImageIn]


class BulkCancelShiftsRequest(CamelModel):
    guard_id: UUID
    from_date: date
    to_date: date
    cancellation_reason: str = Field(min_length=1, max_length=1000)
    leave_type: Literal["SICK_LEAVE", "MATERNITY_LEAVE", "LONG_TERM_LEAVE", "OTHER"]
    evidence_image_url: str | None = None
    cancelled_by: UUID | None = None

    @model_validator(mode="after")
    def validate_date_range(self) -> "BulkCancelShiftsRequest":
        if self.from_date > self.to_date:
            raise ValueError("fromDate must be on or before toDate")
        return self
