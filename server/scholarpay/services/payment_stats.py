"""
scholarpay/services/payment_stats.py
Aggregate statistics over PaymentRecords
"""
from typing import Iterable, Set

from scholarpay.models.schemas import (
    MethodTotal, PaymentMethod, PaymentRecord, PaymentStats, PaymentStatus, SelectionTotals,
)


def compute_payment_stats(records: Iterable[PaymentRecord]) -> PaymentStats:
    """Counts by status, paid revenue and the manually collected part of it"""
    stats = PaymentStats()
    for record in records:
        stats.total_payments += 1
        if record.status == PaymentStatus.PENDING:
            stats.pending_payments += 1
        elif record.status == PaymentStatus.PAID:
            stats.paid_payments += 1
            stats.total_revenue += record.amount
            if record.payment_method == PaymentMethod.MANUAL:
                stats.manual_revenue += record.amount
    return stats


def calculate_selection_totals(records: Iterable[PaymentRecord], selected_ids: Iterable[str]) -> SelectionTotals:
    """Sum of the selected records, broken down by payment method"""
    selected: Set[str] = set(selected_ids)
    totals = SelectionTotals()
    for record in records:
        if record.id not in selected:
            continue
        method = record.payment_method.value if record.payment_method else PaymentMethod.MANUAL.value
        bucket = totals.by_method.setdefault(method, MethodTotal())
        bucket.count += 1
        bucket.amount += record.amount
        totals.count += 1
        totals.total_amount += record.amount
    return totals
