"""
scholarpay/services/payment_engine.py
Pipeline: assemble -> filter -> sort -> paginate / aggregate
"""
from typing import List, Optional, Sequence, Tuple, Union

from scholarpay.models.schemas import (
    AdminPaymentsFilters, Affiliate, FeeSchedule, PaymentRecord, PaymentSources,
    PaymentStats, PaymentsPage, SortField, SortOrder,
)
from scholarpay.services.pagination import paginate_records
from scholarpay.services.payment_filters import filter_payments
from scholarpay.services.payment_sorting import sort_payments
from scholarpay.services.payment_stats import compute_payment_stats
from scholarpay.services.record_assembler import assemble_payment_records


def reconcile_payments(
    sources: PaymentSources,
    schedule: Optional[FeeSchedule] = None,
) -> Tuple[List[PaymentRecord], PaymentStats]:
    """Normalized records plus stats over all of them"""
    records = assemble_payment_records(sources, schedule)
    return records, compute_payment_stats(records)


def select_payments(
    records: Sequence[PaymentRecord],
    filters: Optional[AdminPaymentsFilters] = None,
    affiliates: Sequence[Affiliate] = (),
    sort_by: Union[SortField, str] = SortField.PAYMENT_DATE,
    sort_order: Union[SortOrder, str] = SortOrder.DESC,
    schedule: Optional[FeeSchedule] = None,
) -> List[PaymentRecord]:
    schedule = schedule or FeeSchedule()
    filtered = filter_payments(records, filters, affiliates, schedule.excluded_scholarship_titles)
    return sort_payments(filtered, sort_by, sort_order)


def build_payments_page(
    sources: PaymentSources,
    filters: Optional[AdminPaymentsFilters] = None,
    sort_by: Union[SortField, str] = SortField.PAYMENT_DATE,
    sort_order: Union[SortOrder, str] = SortOrder.DESC,
    page: int = 1,
    page_size: int = 25,
    schedule: Optional[FeeSchedule] = None,
) -> PaymentsPage:
    records, stats = reconcile_payments(sources, schedule)
    selected = select_payments(records, filters, sources.affiliates, sort_by, sort_order, schedule)
    result = paginate_records(selected, page, page_size)
    return PaymentsPage(
        records=result["data"],
        total=result["count"],
        page=result["page"],
        page_size=result["page_size"],
        total_pages=result["total_pages"],
        stats=stats,
        filtered_stats=compute_payment_stats(selected),
    )
