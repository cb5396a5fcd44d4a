"""
scholarpay/db/payment_loaders.py
Loaders for the payment evidence sources and the fee resolution inputs
"""
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set, Tuple, Type, TypeVar
import asyncio
import logging

from pydantic import ValidationError

from scholarpay.core.config import settings
from scholarpay.core.exceptions import LoadCancelledError, SourceFetchError
from scholarpay.db.supabase import SupabaseQueries, gather_loads
from scholarpay.models.schemas import (
    Affiliate, ApplicationRow, FeeOverrides, FeeResolutionInputs, FeeType,
    IndividualFeePayment, PaymentSources, PlanGeneration, SourceRow,
    StudentProfile, ZellePaymentRow,
)
from scholarpay.services.fee_resolver import plan_generation
from scholarpay.services.fee_types import normalize_fee_type

logger = logging.getLogger(__name__)

T = TypeVar("T")
RowT = TypeVar("RowT", bound=SourceRow)

PROFILE_COLUMNS = (
    "id, user_id, full_name, email, "
    "has_paid_selection_process_fee, is_application_fee_paid, is_scholarship_fee_paid, has_paid_i20_control_fee, "
    "selection_process_fee_payment_method, i20_control_fee_payment_method, "
    "dependents, seller_referral_code, system_type, last_payment_date, created_at"
)

APPLICATION_COLUMNS = (
    "id, student_id, scholarship_id, status, is_application_fee_paid, is_scholarship_fee_paid, "
    "application_fee_payment_method, scholarship_fee_payment_method, paid_at, created_at, "
    f"user_profiles!student_id({PROFILE_COLUMNS}), "
    "scholarships(id, title, field_of_study, application_fee_amount, universities(id, name))"
)

PAID_FLAGS_FILTER = (
    "has_paid_selection_process_fee.eq.true,is_application_fee_paid.eq.true,"
    "is_scholarship_fee_paid.eq.true,has_paid_i20_control_fee.eq.true"
)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(payment: IndividualFeePayment) -> datetime:
    when = payment.payment_date
    if when is None:
        return _EPOCH
    return when if when.tzinfo else when.replace(tzinfo=timezone.utc)


class PaymentSourcesLoader:
    """
    Fetches the three evidence collections plus resolver inputs from Supabase

    Any failed query aborts the whole load with SourceFetchError; the engine
    never sees a partial set of sources.
    """

    def __init__(
        self,
        db: SupabaseQueries,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
        exclude_test_accounts: Optional[bool] = None,
        excluded_email_domains: Optional[Iterable[str]] = None,
    ):
        self.db = db
        self.batch_size = batch_size or settings.LOADER_BATCH_SIZE
        self.timeout = timeout or settings.LOADER_TIMEOUT_SECONDS
        self.exclude_test_accounts = (
            settings.exclude_test_accounts if exclude_test_accounts is None else exclude_test_accounts
        )
        domains = settings.EXCLUDED_EMAIL_DOMAINS if excluded_email_domains is None else excluded_email_domains
        self.excluded_email_domains = [d.lower() for d in domains]

    # ============================================
    # HELPERS
    # ============================================

    async def _fetch(self, what: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except SourceFetchError:
            raise
        except Exception as e:
            logger.error(f"Loading {what} failed: {e}")
            raise SourceFetchError(f"Failed to load {what}: {e}") from e

    @staticmethod
    def _parse(model: Type[RowT], rows: List[Dict[str, Any]], what: str) -> List[RowT]:
        parsed = []
        for row in rows:
            try:
                parsed.append(model.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {what} row {row.get('id')}: {e.error_count()} error(s)")
        return parsed

    def _is_test_account(self, email: Optional[str]) -> bool:
        if not self.exclude_test_accounts or not email:
            return False
        email = email.lower()
        return any(domain in email for domain in self.excluded_email_domains)

    # ============================================
    # EVIDENCE SOURCES
    # ============================================

    async def load_applications(self) -> List[ApplicationRow]:
        rows = await self._fetch(
            "scholarship applications",
            self.db.select_all("scholarship_applications", APPLICATION_COLUMNS),
        )
        applications = self._parse(ApplicationRow, rows, "application")
        return [
            app for app in applications
            if not (app.student and self._is_test_account(app.student.email))
        ]

    async def load_zelle_payments(self) -> List[ZellePaymentRow]:
        rows = await self._fetch(
            "Zelle payments",
            self.db.select_all("zelle_payments", filters={"status": "approved"}),
        )
        if not rows:
            return []

        profiles = await self._fetch(
            "Zelle payment profiles",
            self.db.select_in(
                "user_profiles", "user_id", [row.get("user_id") for row in rows],
                columns=PROFILE_COLUMNS, batch_size=self.batch_size,
            ),
        )
        profile_by_user = {profile.get("user_id"): profile for profile in profiles}
        for row in rows:
            row["user_profiles"] = profile_by_user.get(row.get("user_id"))

        payments = self._parse(ZellePaymentRow, rows, "Zelle payment")
        return [
            payment for payment in payments
            if not (payment.student and self._is_test_account(payment.student.email))
        ]

    async def load_gateway_users(self) -> List[StudentProfile]:
        rows = await self._fetch(
            "gateway users",
            self.db.select_all(
                "user_profiles", PROFILE_COLUMNS,
                build=lambda query: query.or_(PAID_FLAGS_FILTER),
            ),
        )
        users = self._parse(StudentProfile, rows, "user profile")
        return [user for user in users if not self._is_test_account(user.email)]

    async def load_affiliates(self) -> List[Affiliate]:
        rows = await self._fetch(
            "affiliates",
            self.db.select_all("affiliate_admins", "id, full_name, referral_code, sellers(id, referral_code)"),
        )
        return self._parse(Affiliate, rows, "affiliate")

    # ============================================
    # FEE RESOLUTION INPUTS
    # ============================================

    async def load_fee_overrides(self, user_ids: List[str]) -> Dict[str, FeeOverrides]:
        rows = await self._fetch(
            "fee overrides",
            self.db.select_in("user_fee_overrides", "user_id", user_ids, batch_size=self.batch_size),
        )
        return {
            override.user_id: override
            for override in self._parse(FeeOverrides, rows, "fee override")
            if override.user_id
        }

    async def load_system_types(self, user_ids: List[str]) -> Dict[str, PlanGeneration]:
        rows = await self._fetch(
            "system types",
            self.db.select_in(
                "user_profiles", "user_id", user_ids,
                columns="user_id, system_type", batch_size=self.batch_size,
            ),
        )
        return {row["user_id"]: plan_generation(row.get("system_type")) for row in rows if row.get("user_id")}

    async def load_individual_payments(
        self, user_ids: List[str]
    ) -> Tuple[Dict[str, Dict[FeeType, float]], Dict[str, Dict[FeeType, datetime]]]:
        """Real paid amounts and payment dates per user and fee type; latest payment wins"""
        rows = await self._fetch(
            "individual fee payments",
            self.db.select_in(
                "individual_fee_payments", "user_id", user_ids,
                columns="user_id, fee_type, amount, payment_date", batch_size=self.batch_size,
            ),
        )
        payments = sorted(self._parse(IndividualFeePayment, rows, "individual fee payment"), key=_sort_key)

        amounts: Dict[str, Dict[FeeType, float]] = {}
        dates: Dict[str, Dict[FeeType, datetime]] = {}
        for payment in payments:
            fee_type = normalize_fee_type(payment.fee_type)
            if not payment.user_id or fee_type is None:
                continue
            if payment.amount is not None:
                amounts.setdefault(payment.user_id, {})[fee_type] = payment.amount
            if payment.payment_date is not None:
                dates.setdefault(payment.user_id, {})[fee_type] = payment.payment_date
        return amounts, dates

    # ============================================
    # FULL LOAD
    # ============================================

    async def _load(self) -> PaymentSources:
        applications, zelle_payments, gateway_users, affiliates = await gather_loads(
            self.load_applications(),
            self.load_zelle_payments(),
            self.load_gateway_users(),
            self.load_affiliates(),
        )

        application_users: Set[str] = {
            app.student.user_id for app in applications if app.student and app.student.user_id
        }
        gateway_users = [user for user in gateway_users if user.user_id not in application_users]

        user_ids = list(dict.fromkeys(
            [app.student.user_id for app in applications if app.student and app.student.user_id]
            + [p.student.user_id for p in zelle_payments if p.student and p.student.user_id]
            + [user.user_id for user in gateway_users if user.user_id]
        ))

        overrides, system_types, (real_amounts, payment_dates) = await gather_loads(
            self.load_fee_overrides(user_ids),
            self.load_system_types(user_ids),
            self.load_individual_payments(user_ids),
        )

        logger.info(
            f"Loaded payment sources: {len(applications)} applications, "
            f"{len(zelle_payments)} Zelle payments, {len(gateway_users)} gateway users"
        )
        return PaymentSources(
            applications=applications,
            zelle_payments=zelle_payments,
            gateway_users=gateway_users,
            affiliates=affiliates,
            inputs=FeeResolutionInputs(
                overrides=overrides,
                system_types=system_types,
                real_payment_amounts=real_amounts,
                payment_dates=payment_dates,
            ),
        )

    async def load_all(self, cancel_event: Optional[asyncio.Event] = None) -> PaymentSources:
        """
        Load every source, failing as a whole

        Args:
            cancel_event: Optional event; setting it aborts the in-flight load

        Raises:
            SourceFetchError: a query failed or the load timed out
            LoadCancelledError: cancel_event was set before the load finished
        """
        load = asyncio.ensure_future(asyncio.wait_for(self._load(), timeout=self.timeout))
        if cancel_event is None:
            waiters = {load}
        else:
            waiters = {load, asyncio.ensure_future(cancel_event.wait())}

        try:
            done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            for waiter in waiters:
                waiter.cancel()
            raise

        for waiter in pending:
            waiter.cancel()

        if load not in done:
            logger.info("Payment source load cancelled by caller")
            raise LoadCancelledError()

        try:
            return load.result()
        except asyncio.TimeoutError as e:
            raise SourceFetchError(f"Payment sources did not load within {self.timeout}s") from e
