"""
scholarpay/services/payment_filters.py
Predicate filtering of PaymentRecords for the admin view
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from scholarpay.models.schemas import (
    EXCLUDED_SCHOLARSHIP_TITLE, AdminPaymentsFilters, Affiliate, FilterValue,
    PaymentMethod, PaymentRecord,
)

DEFAULT_EXCLUDED_TITLES = (EXCLUDED_SCHOLARSHIP_TITLE,)


def _is_unset(value: Optional[FilterValue]) -> bool:
    if value is None or value == "" or value == "all":
        return True
    if isinstance(value, list):
        return len(value) == 0 or "all" in value
    return False


def _as_list(value: FilterValue) -> List[str]:
    return value if isinstance(value, list) else [value]


def _matches(value: Optional[FilterValue], actual: Optional[str]) -> bool:
    if _is_unset(value):
        return True
    return actual in _as_list(value)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def matches_search(record: PaymentRecord, search: str) -> bool:
    term = (search or "").strip().lower()
    if not term:
        return True
    return any(
        term in (field or "").lower()
        for field in (record.student_name, record.student_email, record.university_name, record.scholarship_title)
    )


def matches_payment_method(record: PaymentRecord, value: Optional[FilterValue]) -> bool:
    """
    Payment-method filter values: 'stripe' (card), 'pix', 'zelle', 'outside' (manual).
    PIX rows are stored as stripe with metadata.payment_method == 'pix'.
    """
    if _is_unset(value):
        return True

    metadata = record.metadata or {}
    is_pix = metadata.get("payment_method") == "pix" or metadata.get("is_pix") is True

    def matches_one(option: str) -> bool:
        if option == "pix":
            return record.payment_method == PaymentMethod.STRIPE and is_pix
        if option == "stripe":
            return record.payment_method == PaymentMethod.STRIPE and not is_pix
        if option == "outside":
            return record.payment_method == PaymentMethod.MANUAL
        return record.payment_method.value == option

    return any(matches_one(option) for option in _as_list(value))


def resolve_affiliate(referral_code: Optional[str], affiliates: Sequence[Affiliate]) -> Optional[Affiliate]:
    """Affiliate owning a referral code, directly or through one of its sellers"""
    if not referral_code:
        return None
    for affiliate in affiliates:
        if affiliate.referral_code == referral_code:
            return affiliate
    for affiliate in affiliates:
        if any(seller.referral_code == referral_code for seller in affiliate.sellers):
            return affiliate
    return None


def matches_affiliate(record: PaymentRecord, value: Optional[FilterValue], affiliates: Sequence[Affiliate]) -> bool:
    if _is_unset(value):
        return True
    affiliate = resolve_affiliate(record.seller_referral_code, affiliates)
    return affiliate is not None and affiliate.id in _as_list(value)


def matches_date_range(record: PaymentRecord, date_from: Optional[datetime], date_to: Optional[datetime]) -> bool:
    if date_from is None and date_to is None:
        return True
    when = record.payment_date or record.created_at
    if when is None:
        return False
    when = _as_utc(when)
    if date_from is not None and when < _as_utc(date_from):
        return False
    if date_to is not None and when > _as_utc(date_to):
        return False
    return True


def record_matches(
    record: PaymentRecord,
    filters: AdminPaymentsFilters,
    affiliates: Sequence[Affiliate] = (),
    excluded_titles: Sequence[str] = DEFAULT_EXCLUDED_TITLES,
) -> bool:
    """All predicates ANDed; unset filters always pass"""
    if record.scholarship_title in excluded_titles:
        return False
    return (
        matches_search(record, filters.search)
        and _matches(filters.university, record.university_id)
        and _matches(filters.fee_type, record.fee_type.value)
        and _matches(filters.status, record.status.value)
        and matches_payment_method(record, filters.payment_method)
        and matches_affiliate(record, filters.affiliate, affiliates)
        and matches_date_range(record, filters.date_from, filters.date_to)
    )


def filter_payments(
    records: Iterable[PaymentRecord],
    filters: Optional[AdminPaymentsFilters] = None,
    affiliates: Sequence[Affiliate] = (),
    excluded_titles: Sequence[str] = DEFAULT_EXCLUDED_TITLES,
) -> List[PaymentRecord]:
    filters = filters or AdminPaymentsFilters()
    return [
        record for record in records
        if record_matches(record, filters, affiliates, excluded_titles)
    ]
