"""Pydantic schemas for the admin commission API."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from skyyield.core.formatting import parse_commission_month
from skyyield.errors import InvalidInput, MissingInput
from skyyield.models import STRUCTURE_TYPE_ENUM


def _normalize_type(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _month(value: Any) -> Any:
    if value is None:
        return value
    return parse_commission_month(value)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CommissionCreate(BaseModel):
    """Direct insert: the amount is stored as given, nothing is recomputed."""

    recipient_type: str
    partner_id: int
    commission_month: date
    commission_amount: Decimal
    calculation_method: Optional[str] = None
    calculation_details: Optional[str] = None
    revenue_basis: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("recipient_type", mode="before")
    def normalize_recipient(cls, value: Any) -> Any:
        return _normalize_type(value)

    @field_validator("commission_month", mode="before")
    def parse_month(cls, value: Any) -> Any:
        return _month(value)

    @field_validator("calculation_method", mode="before")
    def validate_method(cls, value: Any) -> Any:
        value = _blank_to_none(_normalize_type(value))
        if value is not None and value not in STRUCTURE_TYPE_ENUM:
            raise ValueError("Calculation method must be flat_fee, percentage, per_referral, or hybrid.")
        return value

    @field_validator("revenue_basis", "notes", "calculation_details", mode="before")
    def blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)


class CommissionCalculateRequest(BaseModel):
    """Computed insert, sent by the admin UI with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    action: Literal["calculate"] = "calculate"
    partner_id: int = Field(..., alias="partnerId")
    partner_type: str = Field(..., alias="partnerType")
    month: date
    revenue_basis: Optional[Decimal] = Field(None, alias="revenueBasis", ge=0)

    @field_validator("partner_type", mode="before")
    def normalize_partner_type(cls, value: Any) -> Any:
        return _normalize_type(value)

    @field_validator("month", mode="before")
    def parse_month(cls, value: Any) -> Any:
        return _month(value)

    @field_validator("revenue_basis", mode="before")
    def blank_basis(cls, value: Any) -> Any:
        return _blank_to_none(value)


class CommissionStatusUpdate(BaseModel):
    id: Optional[int] = None
    payment_status: Optional[str] = None
    payment_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=100)
    payment_reference: Optional[str] = Field(None, max_length=200)

    @field_validator("payment_status", mode="before")
    def normalize_status(cls, value: Any) -> Any:
        return _normalize_type(value)

    @field_validator("payment_date", "payment_method", "payment_reference", mode="before")
    def blank_optional(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return value.strip() if isinstance(value, str) else value


class PartnerCommissionUpdate(BaseModel):
    id: Optional[int] = None
    partner_type: Optional[str] = None
    commission_structure_type: Optional[str] = None
    commission_flat_fee_monthly: Optional[Decimal] = Field(None, ge=0)
    commission_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    commission_per_referral: Optional[Decimal] = Field(None, ge=0)
    commission_notes: Optional[str] = None

    @field_validator("partner_type", mode="before")
    def normalize_partner_type(cls, value: Any) -> Any:
        return _normalize_type(value)

    @field_validator("commission_structure_type", mode="before")
    def validate_structure(cls, value: Any) -> Any:
        value = _blank_to_none(_normalize_type(value))
        # The admin UI sends "none" to clear the structure.
        if value in (None, "none"):
            return None
        if value not in STRUCTURE_TYPE_ENUM:
            raise ValueError("Commission structure must be flat_fee, percentage, per_referral, or hybrid.")
        return value

    @field_validator(
        "commission_flat_fee_monthly",
        "commission_percentage",
        "commission_per_referral",
        "commission_notes",
        mode="before",
    )
    def blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)


def describe_validation_errors(errors: Sequence[dict[str, Any]]) -> str:
    """Turn pydantic error dicts into one readable sentence for the error envelope."""
    messages = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


def parse_payload(schema: type[BaseModel], payload: Any):
    """Validate a raw JSON body against ``schema`` raising domain errors on failure."""
    if not isinstance(payload, dict):
        raise InvalidInput("Request body must be a JSON object")
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        errors = exc.errors()
        message = describe_validation_errors(errors)
        if all(error.get("type") == "missing" for error in errors):
            raise MissingInput(message) from exc
        raise InvalidInput(message) from exc
