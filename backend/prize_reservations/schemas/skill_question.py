"""
Pydantic schemas for skill-question attempts and validation.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AttemptResult(BaseModel):
    attempts: int
    max_attempts: int = Field(alias="maxAttempts")
    blocked: bool
    block_until: Optional[int] = Field(default=None, alias="blockUntil")  # epoch ms

    model_config = ConfigDict(populate_by_name=True)


class BlockStatus(BaseModel):
    blocked: bool
    remaining_time: int = Field(alias="remainingTime")  # seconds
    attempts: int

    model_config = ConfigDict(populate_by_name=True)


class ValidateAnswerRequest(BaseModel):
    competition_id: str = Field(alias="competitionId", min_length=1)
    answer: int = Field(ge=0, le=3)
    captcha_token: Optional[str] = Field(default=None, alias="captchaToken")
    ticket_numbers: Optional[list[int]] = Field(default=None, alias="ticketNumbers")

    model_config = ConfigDict(populate_by_name=True)


class ValidateAnswerResponse(BaseModel):
    correct: bool
    message: str
    already_passed: Optional[bool] = Field(default=None, alias="alreadyPassed")
    blocked: Optional[bool] = None
    attempts_remaining: Optional[int] = Field(default=None, alias="attemptsRemaining")
    block_until: Optional[int] = Field(default=None, alias="blockUntil")
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)


class QuestionStatusResponse(BaseModel):
    passed: bool
    blocked: bool
    remaining_time: int = Field(default=0, alias="remainingTime")
    attempts_remaining: int = Field(alias="attemptsRemaining")

    model_config = ConfigDict(populate_by_name=True)
