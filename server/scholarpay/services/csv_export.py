"""
scholarpay/services/csv_export.py
CSV export of payment records: remote edge function and local serialization
"""
import csv
import io
from typing import Iterable, Optional
import logging

import httpx

from scholarpay.core.config import settings
from scholarpay.core.exceptions import ExportError
from scholarpay.models.schemas import PaymentExportRequest, PaymentRecord

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "Student Name",
    "Email",
    "University",
    "Scholarship",
    "Field of Study",
    "Fee Type",
    "Amount",
    "Status",
    "Payment Method",
    "Payment Date",
]


def records_to_csv(records: Iterable[PaymentRecord]) -> str:
    """Serialize records in the fixed admin column order"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for record in records:
        payment_date = record.payment_date or record.created_at
        writer.writerow([
            record.student_name,
            record.student_email,
            record.university_name,
            record.scholarship_title or "",
            record.field_of_study or "",
            record.fee_type.value,
            f"{record.amount / 100:.2f}",
            record.status.value,
            record.payment_method.value,
            payment_date.date().isoformat() if payment_date else "",
        ])
    return buffer.getvalue()


class ExportService:
    """Calls the Supabase edge function that builds the payments CSV server-side"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client
        self.url = f"{settings.SUPABASE_URL.rstrip('/')}/functions/v1/{settings.CSV_EXPORT_FUNCTION}"
        self.headers = {
            "apikey": settings.SUPABASE_SERVICE_KEY,
            "Authorization": f"Bearer {settings.SUPABASE_SERVICE_KEY}",
        }

    async def request_csv(self, request: PaymentExportRequest) -> bytes:
        """
        POST the export request to the edge function

        Raises:
            ExportError: non-2xx response or transport failure
        """
        payload = request.model_dump(exclude_none=True)
        try:
            if self.client is not None:
                response = await self.client.post(self.url, json=payload, headers=self.headers)
            else:
                async with httpx.AsyncClient(timeout=settings.EXPORT_TIMEOUT_SECONDS) as client:
                    response = await client.post(self.url, json=payload, headers=self.headers)
        except httpx.HTTPError as e:
            raise ExportError(0, str(e)) from e

        if not response.is_success:
            raise ExportError(response.status_code, response.text)

        logger.info(f"CSV export generated remotely ({len(response.content)} bytes)")
        return response.content
