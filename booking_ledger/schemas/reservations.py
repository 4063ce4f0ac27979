from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class GuestPayload(BaseModel):
    name: str = Field(..., min_length=1, description="Guest full name")
    email: str = Field(..., min_length=3, description="Guest email")
    phone: Optional[str] = Field(None, description="Guest phone number")


class ReservationCreatePayload(BaseModel):
    """
    Schema for a public booking request.
    """

    unit_id: str = Field(..., description="Unit being booked")
    property_id: str = Field(..., description="Property the unit belongs to")
    owner_id: str = Field(..., description="Owner of the property")
    guest: GuestPayload
    check_in: date
    check_out: date
    guest_count: int = Field(..., ge=1)
    total_price: Decimal = Field(..., gt=0)
    payment_option: Literal["full", "deposit", "none"]
    payment_method: Literal["stripe", "bank_transfer", "none"]
    payment_reference: Optional[str] = Field(None, description="Processor payment id, if any")
    notes: Optional[str] = Field(None, max_length=2000)


class ReservationCreatedResponse(BaseModel):
    """
    Result of a successful booking. access_token is only ever returned here.
    """

    reservation_id: str
    booking_reference: str
    deposit_amount: Decimal
    status: str
    payment_status: str
    access_token: str
    token_expires_at: datetime


class CancellationPayload(BaseModel):
    booking_reference: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)


class CancellationResponse(BaseModel):
    reservation_id: str
    refund_amount: Decimal
    refund_status: str
    already_cancelled: bool


class AccessPayload(BaseModel):
    token: str = Field(..., description="Guest access token")


class ReservationView(BaseModel):
    """
    Guest-facing view of a reservation. Never includes the token hash or
    payment processor references.
    """

    reservation_id: str
    booking_reference: str
    status: str
    check_in: date
    check_out: date
    guest_name: str
    guest_count: int
    total_price: Decimal
    deposit_amount: Decimal
    paid_amount: Decimal
    payment_method: str
    payment_status: str
    refund_amount: Optional[Decimal] = None
    refund_status: Optional[str] = None
