"""
scholarpay/services/fee_types.py
Normalization of source-specific fee and payment-method spellings
"""
from typing import Any, Dict, Optional, Tuple

from scholarpay.models.schemas import FeeType, PaymentMethod

GLOBAL_FEE_TYPES = frozenset({
    FeeType.SELECTION_PROCESS,
    FeeType.APPLICATION,
    FeeType.I20_CONTROL,
})

# Emission order for a single student
FEE_TYPE_ORDER = (
    FeeType.SELECTION_PROCESS,
    FeeType.APPLICATION,
    FeeType.SCHOLARSHIP,
    FeeType.I20_CONTROL,
)

_FEE_TYPE_ALIASES = {
    "selection_process": FeeType.SELECTION_PROCESS,
    "selection_process_fee": FeeType.SELECTION_PROCESS,
    "application": FeeType.APPLICATION,
    "application_fee": FeeType.APPLICATION,
    "scholarship": FeeType.SCHOLARSHIP,
    "scholarship_fee": FeeType.SCHOLARSHIP,
    "i20_control": FeeType.I20_CONTROL,
    "i20_control_fee": FeeType.I20_CONTROL,
}

# Record id suffix per fee type
FEE_ID_SUFFIX = {
    FeeType.SELECTION_PROCESS: "selection",
    FeeType.APPLICATION: "application",
    FeeType.SCHOLARSHIP: "scholarship",
    FeeType.I20_CONTROL: "i20",
}


def normalize_fee_type(value: Optional[str]) -> Optional[FeeType]:
    """Map any known spelling to FeeType, None when unrecognised"""
    if not value:
        return None
    return _FEE_TYPE_ALIASES.get(str(value).strip().lower())


def is_global_fee(fee_type: FeeType) -> bool:
    return fee_type in GLOBAL_FEE_TYPES


def normalize_payment_method(value: Optional[str]) -> Tuple[PaymentMethod, Optional[Dict[str, Any]]]:
    """
    Map a stored payment-method string to PaymentMethod.

    PIX is captured through Stripe, so it becomes STRIPE with the original
    method kept in the returned metadata. Missing or unknown values are MANUAL.
    """
    method = (value or "").strip().lower()
    if method == "pix":
        return PaymentMethod.STRIPE, {"payment_method": "pix"}
    try:
        return PaymentMethod(method), None
    except ValueError:
        return PaymentMethod.MANUAL, None
