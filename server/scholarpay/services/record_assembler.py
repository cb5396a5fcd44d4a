"""
scholarpay/services/record_assembler.py
Builds normalized PaymentRecords from the three evidence sources

Source precedence:
    1. scholarship applications (paid flags embedded on application + student profile)
    2. approved Zelle transfers, for students with no application
    3. gateway-only users, for students with neither
Global fees (selection process, application, I-20 control) are emitted at most
once per student. Scholarship fees repeat, one per application.
"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set
import logging

from scholarpay.models.schemas import (
    ApplicationRow, FeeResolutionInputs, FeeSchedule, FeeType, PaymentMethod,
    PaymentRecord, PaymentSources, PaymentStatus, StudentFeeContext,
    StudentProfile, ZellePaymentRow,
)
from scholarpay.services.fee_resolver import FeeResolver, plan_generation
from scholarpay.services.fee_types import (
    FEE_ID_SUFFIX, FEE_TYPE_ORDER, is_global_fee, normalize_fee_type,
    normalize_payment_method,
)

logger = logging.getLogger(__name__)

UNSELECTED_ID = "00000000-0000-0000-0000-000000000000"
UNSELECTED_UNIVERSITY = "No University Selected"
UNSELECTED_SCHOLARSHIP = "No Scholarship Selected"
UNKNOWN_STUDENT = "Unknown Student"
UNKNOWN_UNIVERSITY = "Unknown University"
UNKNOWN_SCHOLARSHIP = "Unknown Scholarship"

EmittedFees = Dict[str, Set[FeeType]]


def _student_key(student: Optional[StudentProfile]) -> Optional[str]:
    if student is None:
        return None
    return student.user_id or student.id


class RecordAssembler:
    """One assembler per invocation; holds no state between calls to assemble()"""

    def __init__(self, inputs: FeeResolutionInputs, schedule: Optional[FeeSchedule] = None):
        self.inputs = inputs
        self.schedule = schedule or FeeSchedule()
        self.resolver = FeeResolver(self.schedule)

    def assemble(
        self,
        applications: Iterable[ApplicationRow],
        zelle_payments: Iterable[ZellePaymentRow],
        gateway_users: Iterable[StudentProfile],
    ) -> List[PaymentRecord]:
        applications = list(applications)
        emitted: EmittedFees = defaultdict(set)

        application_users = {
            _student_key(app.student) for app in applications if _student_key(app.student)
        }

        records = self._from_applications(applications, emitted)
        app_count = len(records)

        zelle_by_user = self._group_zelle(zelle_payments)
        records.extend(self._from_zelle(zelle_by_user, application_users, emitted))
        zelle_count = len(records) - app_count

        records.extend(self._from_gateway(gateway_users, application_users | set(zelle_by_user), emitted))

        logger.info(
            f"Assembled {len(records)} payment records "
            f"(applications={app_count}, zelle={zelle_count}, gateway={len(records) - app_count - zelle_count})"
        )
        return records

    # ============================================
    # FEE RESOLUTION HELPERS
    # ============================================

    def _context(
        self,
        student: StudentProfile,
        fee_type: FeeType,
        scholarship_application_fee=None,
        real_paid: Optional[float] = None,
    ) -> StudentFeeContext:
        key = _student_key(student)
        overrides = self.inputs.overrides.get(key)
        if real_paid is None:
            real_paid = self.inputs.real_payment_amounts.get(key, {}).get(fee_type)
        return StudentFeeContext(
            user_id=key,
            plan=self.inputs.system_types.get(key) or plan_generation(student.system_type),
            dependents=student.dependents,
            override=overrides.for_fee(fee_type) if overrides else None,
            real_paid=real_paid,
            scholarship_application_fee=scholarship_application_fee if fee_type == FeeType.APPLICATION else None,
        )

    def _payment_date(self, key: str, fee_type: FeeType, *fallbacks: Optional[datetime]) -> Optional[datetime]:
        precise = self.inputs.payment_dates.get(key, {}).get(fee_type)
        if precise:
            return precise
        return next((value for value in fallbacks if value), None)

    # ============================================
    # SOURCE 1: APPLICATIONS
    # ============================================

    def _from_applications(self, applications: List[ApplicationRow], emitted: EmittedFees) -> List[PaymentRecord]:
        records = []
        for app in applications:
            student = app.student
            scholarship = app.scholarship
            university = scholarship.university if scholarship else None
            key = _student_key(student)
            if not key or scholarship is None or university is None:
                logger.debug(f"Skipping application {app.id}: missing student, scholarship or university")
                continue

            paid_flags = {
                FeeType.SELECTION_PROCESS: (student.has_paid_selection_process_fee, student.selection_process_fee_payment_method),
                FeeType.APPLICATION: (app.is_application_fee_paid, app.application_fee_payment_method),
                FeeType.SCHOLARSHIP: (app.is_scholarship_fee_paid, app.scholarship_fee_payment_method),
                FeeType.I20_CONTROL: (student.has_paid_i20_control_fee, student.i20_control_fee_payment_method),
            }

            for fee_type in FEE_TYPE_ORDER:
                paid, method = paid_flags[fee_type]
                if not paid:
                    continue
                if is_global_fee(fee_type):
                    if fee_type in emitted[key]:
                        continue
                    record_id = f"app-{key}-{FEE_ID_SUFFIX[fee_type]}"
                else:
                    if scholarship.id in self.schedule.excluded_scholarship_ids:
                        continue
                    record_id = f"app-{app.id}-{FEE_ID_SUFFIX[fee_type]}"

                payment_method, metadata = normalize_payment_method(method)
                ctx = self._context(student, fee_type, scholarship_application_fee=scholarship.application_fee_amount)
                records.append(PaymentRecord(
                    id=record_id,
                    student_id=student.id,
                    user_id=student.user_id,
                    student_name=student.full_name or UNKNOWN_STUDENT,
                    student_email=student.email or "",
                    university_id=university.id,
                    university_name=university.name or UNKNOWN_UNIVERSITY,
                    scholarship_id=scholarship.id,
                    scholarship_title=scholarship.title or UNKNOWN_SCHOLARSHIP,
                    field_of_study=scholarship.field_of_study,
                    fee_type=fee_type,
                    amount=self.resolver.resolve(fee_type, ctx),
                    status=PaymentStatus.PAID,
                    scholarships_ids=[scholarship.id] if scholarship.id else [],
                    payment_date=self._payment_date(key, fee_type, student.last_payment_date, app.paid_at, app.created_at),
                    created_at=app.created_at,
                    payment_method=payment_method,
                    seller_referral_code=student.seller_referral_code,
                    metadata=metadata,
                ))
                if is_global_fee(fee_type):
                    emitted[key].add(fee_type)
        return records

    # ============================================
    # SOURCE 2: ZELLE TRANSFERS
    # ============================================

    @staticmethod
    def _group_zelle(zelle_payments: Iterable[ZellePaymentRow]) -> Dict[str, List[ZellePaymentRow]]:
        grouped: Dict[str, List[ZellePaymentRow]] = {}
        for payment in zelle_payments:
            key = _student_key(payment.student)
            if not key:
                logger.debug(f"Skipping Zelle payment {payment.id}: no student profile")
                continue
            grouped.setdefault(key, []).append(payment)
        return grouped

    def _from_zelle(
        self,
        zelle_by_user: Dict[str, List[ZellePaymentRow]],
        application_users: Set[str],
        emitted: EmittedFees,
    ) -> List[PaymentRecord]:
        records = []
        for key, payments in zelle_by_user.items():
            if key in application_users:
                continue

            by_fee_type: Dict[FeeType, ZellePaymentRow] = {}
            for payment in payments:
                fee_type = normalize_fee_type(payment.fee_type) or normalize_fee_type(payment.fee_type_global)
                if fee_type is None:
                    logger.debug(f"Zelle payment {payment.id} has unknown fee type {payment.fee_type!r}")
                    continue
                by_fee_type.setdefault(fee_type, payment)

            for fee_type in FEE_TYPE_ORDER:
                payment = by_fee_type.get(fee_type)
                if payment is None or fee_type in emitted[key]:
                    continue
                student = payment.student
                real_paid = float(payment.amount) if payment.amount is not None else None
                ctx = self._context(student, fee_type, real_paid=real_paid)
                records.append(PaymentRecord(
                    id=f"zelle-{payment.id}-{FEE_ID_SUFFIX[fee_type]}",
                    student_id=student.id,
                    user_id=student.user_id,
                    student_name=student.full_name or UNKNOWN_STUDENT,
                    student_email=student.email or "",
                    university_id=UNSELECTED_ID,
                    university_name=UNSELECTED_UNIVERSITY,
                    scholarship_id=UNSELECTED_ID,
                    scholarship_title=UNSELECTED_SCHOLARSHIP,
                    fee_type=fee_type,
                    fee_type_global=payment.fee_type_global,
                    amount=self.resolver.resolve(fee_type, ctx),
                    status=PaymentStatus.PAID,
                    payment_date=self._payment_date(key, fee_type, payment.admin_approved_at, payment.created_at),
                    created_at=payment.created_at,
                    payment_method=PaymentMethod.ZELLE,
                    payment_proof_url=payment.screenshot_url,
                    admin_notes=payment.admin_notes,
                    zelle_status="approved",
                    reviewed_by=payment.admin_approved_by,
                    reviewed_at=payment.admin_approved_at,
                    seller_referral_code=student.seller_referral_code,
                    metadata=payment.metadata,
                ))
                emitted[key].add(fee_type)
        return records

    # ============================================
    # SOURCE 3: GATEWAY-ONLY USERS
    # ============================================

    def _from_gateway(
        self,
        gateway_users: Iterable[StudentProfile],
        attributed_users: Set[str],
        emitted: EmittedFees,
    ) -> List[PaymentRecord]:
        records = []
        for user in gateway_users:
            key = _student_key(user)
            if not key or key in attributed_users:
                continue

            paid_flags = {
                FeeType.SELECTION_PROCESS: (user.has_paid_selection_process_fee, user.selection_process_fee_payment_method),
                FeeType.APPLICATION: (user.is_application_fee_paid, None),
                FeeType.SCHOLARSHIP: (user.is_scholarship_fee_paid, None),
                FeeType.I20_CONTROL: (user.has_paid_i20_control_fee, user.i20_control_fee_payment_method),
            }

            for fee_type in FEE_TYPE_ORDER:
                paid, method = paid_flags[fee_type]
                if not paid or fee_type in emitted[key]:
                    continue
                payment_method, metadata = normalize_payment_method(method)
                ctx = self._context(user, fee_type)
                records.append(PaymentRecord(
                    id=f"stripe-{key}-{FEE_ID_SUFFIX[fee_type]}",
                    student_id=user.id,
                    user_id=user.user_id,
                    student_name=user.full_name or UNKNOWN_STUDENT,
                    student_email=user.email or "",
                    university_id=UNSELECTED_ID,
                    university_name=UNSELECTED_UNIVERSITY,
                    scholarship_id=UNSELECTED_ID,
                    scholarship_title=UNSELECTED_SCHOLARSHIP,
                    fee_type=fee_type,
                    amount=self.resolver.resolve(fee_type, ctx),
                    status=PaymentStatus.PAID,
                    payment_date=self._payment_date(key, fee_type, user.last_payment_date, user.created_at),
                    created_at=user.created_at,
                    payment_method=payment_method,
                    seller_referral_code=user.seller_referral_code,
                    metadata=metadata,
                ))
                emitted[key].add(fee_type)
        return records


def assemble_payment_records(sources: PaymentSources, schedule: Optional[FeeSchedule] = None) -> List[PaymentRecord]:
    """Run the assembler over already-loaded sources"""
    assembler = RecordAssembler(sources.inputs, schedule)
    return assembler.assemble(sources.applications, sources.zelle_payments, sources.gateway_users)
