import os
from typing import Any, AsyncGenerator, Dict, List

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-role-key")
os.environ.setdefault("ENVIRONMENT", "development")

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from scholarpay.core.dependencies import get_export_service, get_sources_loader
from scholarpay.core.security import create_access_token
from scholarpay.main import app
from scholarpay.models.schemas import PaymentSources
from scholarpay.services.csv_export import ExportService

from factories import application_row, profile_row, zelle_row
from fakes import StaticLoader


# ============================================
# SAMPLE DATA
# ============================================

@pytest.fixture()
def sample_rows() -> Dict[str, Any]:
    """
    Three students, one per evidence source:
        user-a  legacy, two applications (pix application fee, manual second scholarship)
        user-b  simplified, two approved Zelle transfers
        user-c  legacy with one dependent, gateway-only flags
    """
    ana = profile_row(
        "user-a",
        full_name="Ana Souza",
        email="ana@example.com",
        has_paid_selection_process_fee=True,
        selection_process_fee_payment_method="stripe",
        has_paid_i20_control_fee=True,
        i20_control_fee_payment_method="zelle",
        seller_referral_code="SELL1",
    )
    bruno = profile_row("user-b", full_name="Bruno Lima", email="bruno@example.com", system_type="simplified")
    carla = profile_row(
        "user-c",
        full_name="Carla Mendes",
        email="carla@example.com",
        dependents=1,
        has_paid_selection_process_fee=True,
        has_paid_i20_control_fee=True,
        seller_referral_code="AFF2",
    )
    return {
        "applications": [
            application_row(
                "app-1", ana, application_fee_amount=350,
                is_application_fee_paid=True, application_fee_payment_method="pix",
                is_scholarship_fee_paid=True, scholarship_fee_payment_method="stripe",
                paid_at="2024-03-10T12:00:00+00:00",
            ),
            application_row(
                "app-2", ana, scholarship_id="sch-2", title="Business Leaders",
                university_id="uni-2", university_name="City College", application_fee_amount=350,
                is_application_fee_paid=True, application_fee_payment_method="stripe",
                is_scholarship_fee_paid=True, scholarship_fee_payment_method="manual",
                paid_at="2024-04-01T12:00:00+00:00",
            ),
        ],
        "zelle_payments": [
            zelle_row("z-1", bruno, "selection_process", "350.00"),
            zelle_row("z-2", bruno, "i20_control", "900.00", admin_approved_at="2024-02-20T10:00:00+00:00"),
        ],
        "gateway_users": [carla],
        "affiliates": [
            {"id": "aff-1", "full_name": "Partner One", "referral_code": "AFF1",
             "sellers": [{"id": "seller-1", "referral_code": "SELL1"}]},
            {"id": "aff-2", "full_name": "Partner Two", "referral_code": "AFF2", "sellers": None},
        ],
    }


@pytest.fixture()
def sample_sources(sample_rows) -> PaymentSources:
    return PaymentSources.model_validate(sample_rows)


# ============================================
# HTTP CLIENT
# ============================================

@pytest.fixture()
def admin_headers() -> Dict[str, str]:
    token = create_access_token({"sub": "admin-1", "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def student_headers() -> Dict[str, str]:
    token = create_access_token({"sub": "user-a", "role": "student"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def static_loader(sample_sources) -> StaticLoader:
    return StaticLoader(sample_sources)


@pytest.fixture()
def export_responses() -> List[httpx.Response]:
    """Responses the mocked CSV edge function returns; empty means a 500"""
    return []


@pytest.fixture()
def export_requests() -> List[httpx.Request]:
    return []


@pytest.fixture()
async def client(
    static_loader: StaticLoader,
    export_responses: List[httpx.Response],
    export_requests: List[httpx.Request],
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app with loader and export service overridden."""

    def handler(request: httpx.Request) -> httpx.Response:
        export_requests.append(request)
        if export_responses:
            return export_responses.pop(0)
        return httpx.Response(500, text="edge function crashed")

    export_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_sources_loader] = lambda: static_loader
    app.dependency_overrides[get_export_service] = lambda: ExportService(client=export_client)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await export_client.aclose()
