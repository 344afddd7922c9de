"""Pydantic request/response models for work request endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# --- Requests ---


class SubmitRequestBody(BaseModel):
    work_description: str = Field(..., min_length=1, max_length=5000)
    requested_points: int = Field(..., gt=0)
    class_id: str | None = None
    advisor_id: str | None = None


class ApproveBody(BaseModel):
    approved_points: int = Field(..., gt=0)
    message: str | None = Field(None, max_length=2000)


class RejectBody(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class CorrectionBody(BaseModel):
    note: str = Field(..., min_length=1, max_length=2000)


class ResubmitBody(BaseModel):
    work_description: str = Field(..., min_length=1, max_length=5000)
    requested_points: int = Field(..., gt=0)


class WorkRequestResponse(BaseModel):
    id: str
    staff_id: str
    advisor_id: str
    class_id: str | None = None
    work_description: str
    requested_points: int
    status: str
    response_message: str | None = None
    approved_points: int | None = None
    revision: int
    created_at: datetime
    updated_at: datetime
    responded_at: datetime | None = None

    model_config = {"from_attributes": True}


class WorkRequestListResponse(BaseModel):
    requests: list[WorkRequestResponse]
    total: int


class RequestStatsResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    correction: int
    total_points_requested: int
    total_points_approved: int


# --- Activity ---


class ActivityResponse(BaseModel):
    id: int
    activity_type: str
    description: str
    points: int
    related_request_id: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ActivityListResponse(BaseModel):
    activities: list[ActivityResponse]
