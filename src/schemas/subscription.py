"""Pydantic schemas for subscription, payment cycle and audit resources"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.db.models.enums import (
    AccountingStatus,
    BillingFrequency,
    PaymentStatus,
    RequestType,
    SubscriptionEvent,
    SubscriptionStatus,
)


class SubscriptionCreate(BaseModel):
    """Schema for registering a subscription request."""

    request_type: RequestType = Field(..., description="Invoice or quotation request")
    tool_name: str = Field(..., min_length=1, description="Tool or service name")
    vendor_name: str = Field(..., min_length=1, description="Vendor name")
    department_id: UUID = Field(..., description="Requesting department")
    amount: Decimal = Field(..., ge=0, description="Amount per billing period")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    billing_frequency: BillingFrequency
    start_date: date = Field(..., description="First day of the first billing cycle")
    end_date: Optional[date] = None


class SubscriptionRead(BaseModel):
    """Schema returned when reading a subscription."""

    id: UUID
    request_type: RequestType
    tool_name: str
    vendor_name: str
    department_id: UUID
    amount: Decimal
    currency: str
    billing_frequency: BillingFrequency
    status: SubscriptionStatus
    payment_status: PaymentStatus
    accounting_status: AccountingStatus
    start_date: date
    end_date: Optional[date] = None
    created_by: str
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TransitionRequest(BaseModel):
    event: SubscriptionEvent
    reason: Optional[str] = Field(default=None, description="Free-text reason")
    comments: Optional[str] = None

    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"event"}, exclude_none=True)


class BulkApproveRequest(BaseModel):
    subscription_ids: List[UUID] = Field(..., min_length=1)
    comments: Optional[str] = None


class BulkApproveRead(BaseModel):
    approved: List[UUID]
    skipped: List[UUID]


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class AccountingStatusUpdate(BaseModel):
    accounting_status: AccountingStatus


class PaymentCycleRead(BaseModel):
    """Schema returned when reading a payment cycle."""

    id: UUID
    subscription_id: UUID
    cycle_number: int
    cycle_start_date: date
    cycle_end_date: date
    invoice_deadline: date
    payment_recorded_at: Optional[datetime] = None
    payment_recorded_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    renewal_approved_at: Optional[datetime] = None
    renewal_approved_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RecordPaymentRequest(BaseModel):
    paid_at: Optional[datetime] = Field(
        default=None, description="Defaults to the time of the request"
    )


class CancelCycleRequest(BaseModel):
    reason: Optional[str] = None


class RenewalScanRead(BaseModel):
    opened: List[UUID]
    skipped: List[UUID]


class AuditLogRead(BaseModel):
    id: UUID
    actor_id: str
    action: str
    entity_type: str
    entity_id: Optional[UUID] = None
    changes: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
