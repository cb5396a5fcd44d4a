"""
scholarpay/models/schemas.py
Pydantic schemas for the payment reconciliation engine
"""
from __future__ import annotations

from enum import Enum
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Dict, Any, Union
from datetime import datetime

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator


# ============================================
# ENUMS
# ============================================

class UserRole(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"
    SCHOOL = "school"
    AFFILIATE_ADMIN = "affiliate_admin"
    SELLER = "seller"


class FeeType(str, Enum):
    SELECTION_PROCESS = "selection_process"
    APPLICATION = "application"
    SCHOLARSHIP = "scholarship"
    I20_CONTROL = "i20_control_fee"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    ZELLE = "zelle"
    MANUAL = "manual"


class PlanGeneration(str, Enum):
    SIMPLIFIED = "simplified"
    LEGACY = "legacy"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortField(str, Enum):
    ID = "id"
    STUDENT_NAME = "student_name"
    STUDENT_EMAIL = "student_email"
    UNIVERSITY_NAME = "university_name"
    SCHOLARSHIP_TITLE = "scholarship_title"
    FIELD_OF_STUDY = "field_of_study"
    FEE_TYPE = "fee_type"
    AMOUNT = "amount"
    STATUS = "status"
    PAYMENT_METHOD = "payment_method"
    PAYMENT_DATE = "payment_date"
    CREATED_AT = "created_at"
    SELLER_REFERRAL_CODE = "seller_referral_code"


# ============================================
# SOURCE ROWS (loader -> engine boundary)
# ============================================

def _coerce_flag(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("true", "t", "1", "yes")
    return bool(value)


def _coerce_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class SourceRow(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}


class StudentProfile(SourceRow):
    id: Optional[str] = None
    user_id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    has_paid_selection_process_fee: bool = False
    is_application_fee_paid: bool = False
    is_scholarship_fee_paid: bool = False
    has_paid_i20_control_fee: bool = False
    selection_process_fee_payment_method: Optional[str] = None
    i20_control_fee_payment_method: Optional[str] = None
    dependents: int = 0
    seller_referral_code: Optional[str] = None
    system_type: Optional[str] = None
    last_payment_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator(
        "has_paid_selection_process_fee",
        "is_application_fee_paid",
        "is_scholarship_fee_paid",
        "has_paid_i20_control_fee",
        mode="before",
    )
    @classmethod
    def flag_or_false(cls, v):
        return _coerce_flag(v)

    @field_validator("dependents", mode="before")
    @classmethod
    def dependents_or_zero(cls, v):
        try:
            return max(int(v), 0)
        except (TypeError, ValueError):
            return 0


class University(SourceRow):
    id: Optional[str] = None
    name: Optional[str] = None


class Scholarship(SourceRow):
    id: Optional[str] = None
    title: Optional[str] = None
    field_of_study: Optional[str] = None
    application_fee_amount: Optional[Decimal] = None
    university: Optional[University] = Field(None, alias="universities")

    @field_validator("application_fee_amount", mode="before")
    @classmethod
    def parse_fee_amount(cls, v):
        return _coerce_decimal(v)


class ApplicationRow(SourceRow):
    """scholarship_applications row with its student profile and scholarship embedded"""
    id: str
    student_id: Optional[str] = None
    scholarship_id: Optional[str] = None
    is_application_fee_paid: bool = False
    is_scholarship_fee_paid: bool = False
    application_fee_payment_method: Optional[str] = None
    scholarship_fee_payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    student: Optional[StudentProfile] = Field(None, alias="user_profiles")
    scholarship: Optional[Scholarship] = Field(None, alias="scholarships")

    @field_validator("is_application_fee_paid", "is_scholarship_fee_paid", mode="before")
    @classmethod
    def flag_or_false(cls, v):
        return _coerce_flag(v)


class ZellePaymentRow(SourceRow):
    """Approved bank transfer with proof of payment"""
    id: str
    user_id: Optional[str] = None
    fee_type: Optional[str] = None
    fee_type_global: Optional[str] = None
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    screenshot_url: Optional[str] = None
    admin_notes: Optional[str] = None
    admin_approved_by: Optional[str] = None
    admin_approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None
    student: Optional[StudentProfile] = Field(None, alias="user_profiles")

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, v):
        return _coerce_decimal(v)


class FeeOverrides(SourceRow):
    """Administrator-set amounts in dollars"""
    user_id: Optional[str] = None
    selection_process_fee: Optional[float] = None
    application_fee: Optional[float] = None
    scholarship_fee: Optional[float] = None
    i20_control_fee: Optional[float] = None

    def for_fee(self, fee_type: FeeType) -> Optional[float]:
        return {
            FeeType.SELECTION_PROCESS: self.selection_process_fee,
            FeeType.APPLICATION: self.application_fee,
            FeeType.SCHOLARSHIP: self.scholarship_fee,
            FeeType.I20_CONTROL: self.i20_control_fee,
        }[fee_type]


class IndividualFeePayment(SourceRow):
    """individual_fee_payments row: one captured gateway payment"""
    user_id: Optional[str] = None
    fee_type: Optional[str] = None
    amount: Optional[float] = None
    payment_date: Optional[datetime] = None


class Seller(SourceRow):
    id: Optional[str] = None
    referral_code: Optional[str] = None


class Affiliate(SourceRow):
    id: str
    full_name: Optional[str] = None
    referral_code: Optional[str] = None
    sellers: List[Seller] = []

    @field_validator("sellers", mode="before")
    @classmethod
    def sellers_or_empty(cls, v):
        return v or []


# ============================================
# ENGINE INPUTS
# ============================================

class FeeResolutionInputs(BaseModel):
    """Per-student maps keyed by user_id"""
    overrides: Dict[str, FeeOverrides] = {}
    system_types: Dict[str, PlanGeneration] = {}
    real_payment_amounts: Dict[str, Dict[FeeType, float]] = {}
    payment_dates: Dict[str, Dict[FeeType, datetime]] = {}


class PaymentSources(BaseModel):
    applications: List[ApplicationRow] = []
    zelle_payments: List[ZellePaymentRow] = []
    gateway_users: List[StudentProfile] = []
    affiliates: List[Affiliate] = []
    inputs: FeeResolutionInputs = Field(default_factory=FeeResolutionInputs)


# TODO: confirm with product why these two are hidden; kept for parity with the admin dashboard
EXCLUDED_SCHOLARSHIP_ID = "31c9b8e6-af11-4462-8494-c79854f3f66e"
EXCLUDED_SCHOLARSHIP_TITLE = "Current Students Scholarship"


class FeeSchedule(BaseModel):
    default_application_fee: float = 350.0
    default_i20_control_fee: float = 900.0
    plausibility_tolerance: float = 0.5
    excluded_scholarship_ids: List[str] = [EXCLUDED_SCHOLARSHIP_ID]
    excluded_scholarship_titles: List[str] = [EXCLUDED_SCHOLARSHIP_TITLE]

    @classmethod
    def from_settings(cls, settings) -> "FeeSchedule":
        return cls(
            default_application_fee=settings.DEFAULT_APPLICATION_FEE,
            default_i20_control_fee=settings.DEFAULT_I20_CONTROL_FEE,
            plausibility_tolerance=settings.FEE_PLAUSIBILITY_TOLERANCE,
            excluded_scholarship_ids=settings.EXCLUDED_SCHOLARSHIP_IDS,
            excluded_scholarship_titles=settings.EXCLUDED_SCHOLARSHIP_TITLES,
        )


class StudentFeeContext(BaseModel):
    user_id: Optional[str] = None
    plan: PlanGeneration = PlanGeneration.LEGACY
    dependents: int = 0
    override: Optional[float] = None
    real_paid: Optional[float] = None
    scholarship_application_fee: Optional[Decimal] = None


# ============================================
# PAYMENT RECORD & STATS
# ============================================

class PaymentRecord(BaseModel):
    id: str
    student_id: Optional[str] = None
    user_id: Optional[str] = None
    student_name: str
    student_email: str = ""
    university_id: Optional[str] = None
    university_name: str
    scholarship_id: Optional[str] = None
    scholarship_title: Optional[str] = None
    field_of_study: Optional[str] = None
    fee_type: FeeType
    fee_type_global: Optional[str] = None
    amount: int  # cents
    status: PaymentStatus = PaymentStatus.PAID
    scholarships_ids: List[str] = []
    payment_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    payment_method: PaymentMethod = PaymentMethod.MANUAL
    payment_proof_url: Optional[str] = None
    admin_notes: Optional[str] = None
    zelle_status: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    seller_referral_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = {"frozen": True}


class PaymentStats(BaseModel):
    total_revenue: int = 0
    total_payments: int = 0
    paid_payments: int = 0
    pending_payments: int = 0
    monthly_growth: float = 0
    manual_revenue: int = 0


class MethodTotal(BaseModel):
    count: int = 0
    amount: int = 0


class SelectionTotals(BaseModel):
    count: int = 0
    total_amount: int = 0
    by_method: Dict[str, MethodTotal] = {}


# ============================================
# FILTERS, EXPORT & RESPONSES
# ============================================

FilterValue = Union[str, List[str]]


class AdminPaymentsFilters(BaseModel):
    search: str = ""
    university: FilterValue = "all"
    fee_type: FilterValue = "all"
    status: FilterValue = "all"
    payment_method: Optional[FilterValue] = None
    affiliate: Optional[FilterValue] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        return v or None

    @field_validator("date_to", mode="before")
    @classmethod
    def date_only_is_end_of_day(cls, v):
        # a bare YYYY-MM-DD upper bound covers the whole day
        if isinstance(v, str) and len(v) == 10:
            return f"{v}T23:59:59.999999"
        return v


_DATETIME = TypeAdapter(datetime)


class PaymentExportRequest(BaseModel):
    status: str = "all"
    fee_type: str = "all"
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    university_id: Optional[str] = None
    search_query: Optional[str] = None
    affiliate_id: Optional[str] = None

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def parseable_date(cls, v):
        # forwarded verbatim to the edge function, so reject bad dates up front
        if not v:
            return None
        try:
            _DATETIME.validate_python(v)
        except ValidationError:
            raise ValueError(f"{v!r} is not a valid date or datetime")
        return v

    def to_filters(self) -> AdminPaymentsFilters:
        return AdminPaymentsFilters(
            search=self.search_query or "",
            university=self.university_id or "all",
            fee_type=self.fee_type,
            status=self.status,
            affiliate=self.affiliate_id,
            date_from=self.date_from or None,
            date_to=self.date_to or None,
        )


class SelectionTotalsRequest(BaseModel):
    ids: List[str] = []


class PaymentsPage(BaseModel):
    records: List[PaymentRecord]
    total: int
    page: int
    page_size: int
    total_pages: int
    stats: PaymentStats
    filtered_stats: PaymentStats


class TokenPayload(BaseModel):
    sub: str
    role: UserRole
    exp: datetime


__all__ = [
    "UserRole",
    "FeeType",
    "PaymentStatus",
    "PaymentMethod",
    "PlanGeneration",
    "SortOrder",
    "SortField",
    "StudentProfile",
    "University",
    "Scholarship",
    "ApplicationRow",
    "ZellePaymentRow",
    "FeeOverrides",
    "IndividualFeePayment",
    "Seller",
    "Affiliate",
    "FeeResolutionInputs",
    "PaymentSources",
    "FeeSchedule",
    "StudentFeeContext",
    "PaymentRecord",
    "PaymentStats",
    "MethodTotal",
    "SelectionTotals",
    "AdminPaymentsFilters",
    "PaymentExportRequest",
    "SelectionTotalsRequest",
    "PaymentsPage",
    "TokenPayload",
]
