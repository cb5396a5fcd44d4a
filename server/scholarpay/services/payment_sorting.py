"""
scholarpay/services/payment_sorting.py
Type-aware ordering of PaymentRecords
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Union

from scholarpay.models.schemas import PaymentRecord, SortField, SortOrder

DATE_FIELDS = (SortField.CREATED_AT, SortField.PAYMENT_DATE)


def _timestamp(value: Any) -> float:
    # missing dates sort as the epoch
    if not isinstance(value, datetime):
        return 0.0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def sort_value(record: PaymentRecord, field: SortField) -> Any:
    """Comparable value for a field, None when the record has no value for it"""
    value = getattr(record, field.value)
    if field == SortField.AMOUNT:
        return value or 0
    if field in DATE_FIELDS:
        return _timestamp(value)
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        return value.lower()
    return value


def sort_payments(
    records: Iterable[PaymentRecord],
    sort_by: Union[SortField, str] = SortField.PAYMENT_DATE,
    sort_order: Union[SortOrder, str] = SortOrder.DESC,
) -> List[PaymentRecord]:
    """
    Sort by one field in either direction.

    Records with no value for the field always come last, whatever the direction.
    Descending is the exact reverse of ascending, ties included.
    """
    field = SortField(sort_by)
    descending = SortOrder(sort_order) == SortOrder.DESC

    present, missing = [], []
    for record in records:
        (missing if sort_value(record, field) is None else present).append(record)

    present.sort(key=lambda record: sort_value(record, field))
    if descending:
        present.reverse()
    return present + missing
