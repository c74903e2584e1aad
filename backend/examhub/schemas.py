"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and enforce the declared
bounds (attempt score 0-100, rating score 1-5, review length) before any
service runs.
"""

from pydantic import BaseModel, Field
from typing import Literal, Optional


class RegisterIn(BaseModel):
    """Payload for user registration/login endpoints."""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8, max_length=128)


class LoginIn(BaseModel):
    username: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class ForgotPasswordIn(BaseModel):
    username: str


class ResetPasswordIn(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8, max_length=128)


class VerifyEmailIn(BaseModel):
    token: str


class ExamIn(BaseModel):
    """Fields accepted when creating an exam."""
    title: str = Field(..., min_length=5, max_length=100)
    description: str = Field(..., max_length=2000)
    category: Literal['Technology', 'Science', 'Mathematics', 'Language', 'Competitive', 'Professional', 'Other']
    difficulty: Literal['Easy', 'Medium', 'Hard', 'Expert']
    duration: int = Field(..., gt=0, description='Duration in minutes')
    total_questions: int = Field(..., ge=1)
    passing_score: float = Field(..., ge=0, le=100)
    is_published: bool = False


class AttemptIn(BaseModel):
    """Result of one completed attempt.

    `duration` is in seconds. When `passed` is omitted it is derived from
    the exam's passing score.
    """
    score: float = Field(..., ge=0, le=100)
    duration: Optional[float] = Field(default=None, ge=0)
    passed: Optional[bool] = None


class RatingIn(BaseModel):
    score: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(default=None, max_length=500)
