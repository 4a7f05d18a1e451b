"""
Pydantic schemas for ticket reservations.

Reservation is both the API shape and the JSON record stored at
reservation:{competitionId}:{userId}. Timestamps are epoch milliseconds.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Reservation(BaseModel):
    user_id: str = Field(alias="userId")
    competition_id: str = Field(alias="competitionId")
    ticket_numbers: list[int] = Field(alias="ticketNumbers")
    reserved_at: int = Field(alias="reservedAt")
    expires_at: int = Field(alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)


class ReserveResult(BaseModel):
    success: bool
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")
    ticket_numbers: list[int] = Field(default_factory=list, alias="ticketNumbers")
    conflicting_tickets: list[int] = Field(default_factory=list, alias="conflictingTickets")

    model_config = ConfigDict(populate_by_name=True)


class ReserveRequest(BaseModel):
    competition_id: str = Field(alias="competitionId", min_length=1)
    quantity: Optional[int] = Field(default=None, gt=0, le=50)
    ticket_numbers: Optional[list[int]] = Field(default=None, alias="ticketNumbers", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("ticket_numbers")
    @classmethod
    def positive_unique(cls, value: Optional[list[int]]) -> Optional[list[int]]:
        if value is None:
            return value
        if any(n <= 0 for n in value):
            raise ValueError("ticket numbers must be positive")
        if len(set(value)) != len(value):
            raise ValueError("ticket numbers must be unique")
        return value

    @model_validator(mode="after")
    def quantity_or_numbers(self) -> "ReserveRequest":
        if (self.quantity is None) == (self.ticket_numbers is None):
            raise ValueError("provide exactly one of quantity or ticketNumbers")
        return self


class ReserveResponse(BaseModel):
    success: bool = True
    ticket_numbers: list[int] = Field(alias="ticketNumbers")
    expires_at: int = Field(alias="expiresAt")
    ttl: int

    model_config = ConfigDict(populate_by_name=True)


class CompetitionRequest(BaseModel):
    competition_id: str = Field(alias="competitionId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CheckoutRequest(CompetitionRequest):
    ticket_numbers: Optional[list[int]] = Field(default=None, alias="ticketNumbers")


class TicketStatusResponse(BaseModel):
    total_tickets: int = Field(alias="totalTickets")
    available_count: int = Field(alias="availableCount")
    unavailable_count: int = Field(alias="unavailableCount")
    user_reservation: Optional[Reservation] = Field(default=None, alias="userReservation")

    model_config = ConfigDict(populate_by_name=True)
