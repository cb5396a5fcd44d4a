from scholarpay.core.config import settings
from scholarpay.db.payment_loaders import PaymentSourcesLoader
from scholarpay.db.supabase import SupabaseQueries
from scholarpay.models.schemas import FeeSchedule
from scholarpay.services.csv_export import ExportService


def get_sources_loader() -> PaymentSourcesLoader:
    """
    Dependency providing the Supabase-backed payment sources loader.
    """
    return PaymentSourcesLoader(SupabaseQueries())


def get_fee_schedule() -> FeeSchedule:
    return FeeSchedule.from_settings(settings)


def get_export_service() -> ExportService:
    return ExportService()
