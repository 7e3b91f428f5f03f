from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
    WithJsonSchema,
)

from engine.intervals import DateInterval


def _upper(value: Any) -> Any:
    """Enum inputs are case-insensitive: "month" -> "MONTH"."""
    if isinstance(value, str):
        return value.strip().upper()
    return value


class PartyType(str, Enum):
    TENANT = "TENANT"
    LANDLORD = "LANDLORD"
    SUBLANDLORD = "SUBLANDLORD"
    GUARANTOR = "GUARANTOR"


class EscalationMethod(str, Enum):
    CPI = "CPI"
    FIXED = "FIXED"
    BASE_YEAR = "BASE_YEAR"
    NNN = "NNN"
    OTHER = "OTHER"


class RentBasis(str, Enum):
    MONTH = "MONTH"
    YEAR = "YEAR"


class OptionType(str, Enum):
    RENEWAL = "RENEWAL"
    TERMINATION = "TERMINATION"
    EXPANSION = "EXPANSION"
    ROFR = "ROFR"
    OTHER = "OTHER"


class ConcessionKind(str, Enum):
    TI_ALLOWANCE = "TI_ALLOWANCE"
    FREE_RENT = "FREE_RENT"
    OTHER = "OTHER"


class ValueBasis(str, Enum):
    TOTAL = "TOTAL"
    PER_SF = "PER_SF"


class OpexMethod(str, Enum):
    BASE_YEAR = "BASE_YEAR"
    EXPENSE_STOP = "EXPENSE_STOP"
    NNN = "NNN"
    OTHER = "OTHER"


class CriticalDateKind(str, Enum):
    COMMENCEMENT = "COMMENCEMENT"
    RENT_START = "RENT_START"
    EXPIRATION = "EXPIRATION"
    NOTICE = "NOTICE"
    OTHER = "OTHER"


class CurrencyCode(str, Enum):
    # Single-currency deployment
    USD = "USD"


class EntityKind(str, Enum):
    PROPERTIES = "properties"
    PARTIES = "parties"
    LEASES = "leases"


Interval = Annotated[
    DateInterval,
    PlainValidator(DateInterval.parse),
    PlainSerializer(lambda i: i.to_literal(), return_type=str, when_used="json"),
    WithJsonSchema({"type": "string", "examples": ["[2024-01-01,2029-01-01)"]}),
]

PartyTypeField = Annotated[PartyType, BeforeValidator(_upper)]
EscalationField = Annotated[EscalationMethod, BeforeValidator(_upper)]
RentBasisField = Annotated[RentBasis, BeforeValidator(_upper)]
OptionTypeField = Annotated[OptionType, BeforeValidator(_upper)]
ConcessionKindField = Annotated[ConcessionKind, BeforeValidator(_upper)]
ValueBasisField = Annotated[ValueBasis, BeforeValidator(_upper)]
CriticalDateKindField = Annotated[CriticalDateKind, BeforeValidator(_upper)]
OpexMethodField = Annotated[OpexMethod, BeforeValidator(_upper)]
CurrencyField = Annotated[CurrencyCode, BeforeValidator(_upper)]


class _Schema(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore", str_strip_whitespace=True)

    def provided(self) -> dict[str, Any]:
        """Fields the caller actually sent (partial updates)."""
        return self.model_dump(exclude_unset=True)


# --- Reference data (batch only) ---

class PropertyIn(_Schema):
    property_id: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = Field(default=None, max_length=500)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)
    total_rsf: Optional[int] = Field(default=None, ge=0)
    active: Optional[bool] = None


class PartyIn(_Schema):
    party_id: Optional[str] = None
    legal_name: Optional[str] = Field(default=None, max_length=500)
    party_type: Optional[PartyTypeField] = None
    active: Optional[bool] = None


# --- Leases and versions ---

class LeaseVersionIn(_Schema):
    """Candidate lease version: the original lease (version 0) or an amendment."""

    effective_interval: Interval = Field(
        validation_alias=AliasChoices("effective_interval", "effective_daterange"),
    )
    suite_id: Optional[str] = None
    premises_rsf: Optional[int] = Field(default=None, ge=0)
    term_months: Optional[int] = Field(default=None, gt=0)
    base_year: Optional[int] = Field(default=None, ge=1900, le=2100)
    escalation_method: Optional[EscalationField] = None
    currency_code: CurrencyField = CurrencyCode.USD
    notes: Optional[str] = None


class LeaseCreate(_Schema):
    property_id: str
    landlord_id: str
    tenant_id: str
    master_lease_num: str = Field(min_length=1, max_length=100)
    execution_date: Optional[date] = None
    initial_version: Optional[LeaseVersionIn] = None


class LeaseUpdate(_Schema):
    property_id: Optional[str] = None
    landlord_id: Optional[str] = None
    tenant_id: Optional[str] = None
    master_lease_num: Optional[str] = Field(default=None, min_length=1, max_length=100)
    execution_date: Optional[date] = None


class LeaseBatchRecord(LeaseUpdate):
    """Batch lease row: create when lease_id is absent, otherwise update (optionally amending)."""

    lease_id: Optional[str] = None
    initial_version: Optional[LeaseVersionIn] = None
    amendment: Optional[LeaseVersionIn] = None


# --- Interval records ---

class RentScheduleCreate(_Schema):
    lease_version_id: str
    period_interval: Interval = Field(
        validation_alias=AliasChoices("period_interval", "period_daterange"),
    )
    amount: Decimal = Field(gt=0, max_digits=15, decimal_places=2)
    basis: RentBasisField


class RentScheduleUpdate(_Schema):
    period_interval: Optional[Interval] = Field(
        default=None,
        validation_alias=AliasChoices("period_interval", "period_daterange"),
    )
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=15, decimal_places=2)
    basis: Optional[RentBasisField] = None


class OptionCreate(_Schema):
    lease_version_id: str
    option_type: OptionTypeField
    window_interval: Interval = Field(
        validation_alias=AliasChoices("window_interval", "window_daterange"),
    )
    terms: Optional[str] = None
    exercised: bool = False
    exercised_date: Optional[date] = None


class OptionUpdate(_Schema):
    option_type: Optional[OptionTypeField] = None
    window_interval: Optional[Interval] = Field(
        default=None,
        validation_alias=AliasChoices("window_interval", "window_daterange"),
    )
    terms: Optional[str] = None
    exercised: Optional[bool] = None
    exercised_date: Optional[date] = None


class OptionExercise(_Schema):
    exercised_date: Optional[date] = None


class ConcessionCreate(_Schema):
    lease_version_id: str
    kind: ConcessionKindField
    value_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    value_basis: Optional[ValueBasisField] = None
    applies_interval: Optional[Interval] = Field(
        default=None,
        validation_alias=AliasChoices("applies_interval", "applies_daterange"),
    )
    notes: Optional[str] = None


class ConcessionUpdate(_Schema):
    kind: Optional[ConcessionKindField] = None
    value_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    value_basis: Optional[ValueBasisField] = None
    applies_interval: Optional[Interval] = Field(
        default=None,
        validation_alias=AliasChoices("applies_interval", "applies_daterange"),
    )
    notes: Optional[str] = None


# --- OpEx pass-throughs ---

class OpexPassThroughCreate(_Schema):
    lease_version_id: str
    method: OpexMethodField
    stop_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    gross_up_pct: Optional[Decimal] = Field(default=None, ge=0, le=100, max_digits=5, decimal_places=2)
    notes: Optional[str] = None


class OpexPassThroughUpdate(_Schema):
    method: Optional[OpexMethodField] = None
    stop_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    gross_up_pct: Optional[Decimal] = Field(default=None, ge=0, le=100, max_digits=5, decimal_places=2)
    notes: Optional[str] = None


# --- Critical dates ---

class CriticalDateCreate(_Schema):
    lease_id: str
    kind: CriticalDateKindField
    date_value: date
    notes: Optional[str] = None


class CriticalDateUpdate(_Schema):
    kind: Optional[CriticalDateKindField] = None
    date_value: Optional[date] = None
    notes: Optional[str] = None


# --- Batch ---

class RecordResult(BaseModel):
    index: int
    success: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[dict[str, Any]] = None


class BatchReport(BaseModel):
    entity_kind: EntityKind
    total: int
    successful: int
    failed: int
    results: List[RecordResult] = Field(default_factory=list)
