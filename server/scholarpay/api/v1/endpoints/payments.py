"""
scholarpay/api/v1/endpoints/payments.py
Admin payment reconciliation endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from fastapi.responses import Response
from pydantic import ValidationError
from typing import List, Optional
from datetime import datetime
from scholarpay.models.schemas import (
    AdminPaymentsFilters, FeeSchedule, PaymentExportRequest, PaymentSources,
    PaymentStats, PaymentsPage, SelectionTotals, SelectionTotalsRequest,
    SortField, SortOrder, TokenPayload,
)
from scholarpay.core.config import settings
from scholarpay.core.dependencies import get_export_service, get_fee_schedule, get_sources_loader
from scholarpay.core.exceptions import ExportError, ServiceError
from scholarpay.core.security import require_admin
from scholarpay.db.payment_loaders import PaymentSourcesLoader
from scholarpay.services.csv_export import ExportService, records_to_csv
from scholarpay.services.payment_engine import build_payments_page, reconcile_payments, select_payments
from scholarpay.services.payment_stats import calculate_selection_totals
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


async def _load_sources(loader: PaymentSourcesLoader) -> PaymentSources:
    try:
        return await loader.load_all()
    except ServiceError as e:
        logger.error(f"Payment sources unavailable: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/", response_model=PaymentsPage)
async def list_payments(
    search: str = "",
    university: List[str] = Query(default=[]),
    fee_type: List[str] = Query(default=[]),
    payment_status: List[str] = Query(default=[], alias="status"),
    payment_method: List[str] = Query(default=[]),
    affiliate: List[str] = Query(default=[]),
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    sort_by: SortField = SortField.PAYMENT_DATE,
    sort_order: SortOrder = SortOrder.DESC,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: TokenPayload = Depends(require_admin),
    loader: PaymentSourcesLoader = Depends(get_sources_loader),
    schedule: FeeSchedule = Depends(get_fee_schedule),
):
    """
    Reconciled payment records, filtered, sorted and paginated (Admin only)

    `stats` covers every reconciled record, `filtered_stats` only the filtered ones.
    """
    try:
        filters = AdminPaymentsFilters(
            search=search,
            university=university,
            fee_type=fee_type,
            status=payment_status,
            payment_method=payment_method,
            affiliate=affiliate,
            date_from=date_from,
            date_to=date_to,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid filters: {e}"
        )

    sources = await _load_sources(loader)

    try:
        return build_payments_page(sources, filters, sort_by, sort_order, page, page_size, schedule)

    except Exception as e:
        logger.error(f"List payments error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reconcile payments"
        )


@router.get("/stats", response_model=PaymentStats)
async def get_payment_stats(
    current_user: TokenPayload = Depends(require_admin),
    loader: PaymentSourcesLoader = Depends(get_sources_loader),
    schedule: FeeSchedule = Depends(get_fee_schedule),
):
    """
    Whole-collection payment statistics (Admin only)
    """
    sources = await _load_sources(loader)

    try:
        _, stats = reconcile_payments(sources, schedule)
        return stats

    except Exception as e:
        logger.error(f"Payment stats error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute payment stats"
        )


@router.post("/selection-totals", response_model=SelectionTotals)
async def get_selection_totals(
    selection: SelectionTotalsRequest,
    current_user: TokenPayload = Depends(require_admin),
    loader: PaymentSourcesLoader = Depends(get_sources_loader),
    schedule: FeeSchedule = Depends(get_fee_schedule),
):
    """
    Totals for a set of selected record ids, broken down by payment method (Admin only)
    """
    sources = await _load_sources(loader)

    try:
        records, _ = reconcile_payments(sources, schedule)
        return calculate_selection_totals(records, selection.ids)

    except Exception as e:
        logger.error(f"Selection totals error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute selection totals"
        )


@router.post("/export")
async def export_payments(
    export_request: PaymentExportRequest,
    sort_by: SortField = SortField.PAYMENT_DATE,
    sort_order: SortOrder = SortOrder.DESC,
    current_user: TokenPayload = Depends(require_admin),
    loader: PaymentSourcesLoader = Depends(get_sources_loader),
    schedule: FeeSchedule = Depends(get_fee_schedule),
    export_service: ExportService = Depends(get_export_service),
):
    """
    Export payments as CSV (Admin only)

    The CSV edge function is tried first; if it fails the CSV is built here
    from the reconciled, filtered and sorted records.
    """
    try:
        content = await export_service.request_csv(export_request)
    except ExportError as e:
        logger.warning(f"CSV export service failed ({e.upstream_status}): {e.text}; using local export")
        sources = await _load_sources(loader)
        records, _ = reconcile_payments(sources, schedule)
        selected = select_payments(
            records, export_request.to_filters(), sources.affiliates, sort_by, sort_order, schedule
        )
        content = records_to_csv(selected).encode("utf-8")

    filename = f"payments-{datetime.now().strftime('%Y-%m-%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
