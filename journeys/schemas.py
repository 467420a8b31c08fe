"""Pydantic request/response schemas for the journeys API.

Journey documents use the camelCase keys of the wire format. Request bodies
for journeys are taken as plain JSON and checked by ``document.validate`` so
every error comes back in one ordered list.
"""
from __future__ import annotations

from pydantic import BaseModel, field_validator


class ActionOut(BaseModel):
    title: str
    description: str
    imageUrl: str | None = None
    type: str


class TouchpointOut(BaseModel):
    title: str
    type: str
    duration: str
    comment: str | None = None
    compassTags: list[str] = []
    actions: list[ActionOut]


class StageOut(BaseModel):
    name: str
    description: str
    touchpoints: list[TouchpointOut]


class PerformanceIndicatorOut(BaseModel):
    name: str
    value: int


class JourneyOut(BaseModel):
    id: str
    title: str
    npsScore: int
    customerSentiment: int
    keyInsight: str
    performanceIndicators: list[PerformanceIndicatorOut]
    stages: list[StageOut]
    createdAt: str
    updatedAt: str


class JourneySummaryOut(BaseModel):
    id: str
    title: str
    npsScore: int
    customerSentiment: int
    keyInsight: str
    stageNames: list[str] = []
    createdAt: str
    updatedAt: str


class FieldErrorOut(BaseModel):
    path: str
    message: str
    kind: str


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def email_must_look_valid(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v

    @field_validator("password")
    @classmethod
    def password_min_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class UserOut(BaseModel):
    id: int
    email: str
    role: str


class LoginResponse(BaseModel):
    success: bool
    token: str
    user: UserOut


class MetaOut(BaseModel):
    compassTags: list[str]
    actionTypes: list[str]
    stageNameSuggestions: list[str]


class ValidationErrorOut(BaseModel):
    message: str
    errors: list[FieldErrorOut]
