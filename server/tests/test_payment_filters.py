"""Unit tests for the admin payment filters."""

from datetime import datetime, timezone

import pytest

from factories import make_record
from scholarpay.models.schemas import (
    AdminPaymentsFilters, Affiliate, FeeType, PaymentMethod, PaymentStatus,
)
from scholarpay.services.payment_filters import (
    filter_payments, matches_payment_method, record_matches, resolve_affiliate,
)


AFFILIATES = [
    Affiliate.model_validate({"id": "aff-1", "referral_code": "AFF1", "sellers": [{"id": "s-1", "referral_code": "SELL1"}]}),
    Affiliate.model_validate({"id": "aff-2", "referral_code": "AFF2", "sellers": None}),
]


@pytest.fixture()
def records():
    return [
        make_record("r1", student_name="Ana Souza", fee_type=FeeType.SELECTION_PROCESS,
                    payment_date="2024-03-10T12:00:00+00:00", seller_referral_code="SELL1"),
        make_record("r2", student_email="bruno@example.com", university_id="uni-2", university_name="City College",
                    fee_type=FeeType.SCHOLARSHIP, status=PaymentStatus.PENDING, payment_method=PaymentMethod.ZELLE,
                    payment_date="2024-04-01T00:00:00+00:00", seller_referral_code="AFF2"),
        make_record("r3", scholarship_title="Business Leaders", payment_method=PaymentMethod.MANUAL,
                    created_at="2024-02-15T00:00:00+00:00"),
        make_record("r4", metadata={"payment_method": "pix"}, payment_date="2024-03-11T00:00:00+00:00"),
        make_record("r5", scholarship_title="Current Students Scholarship"),
    ]


def ids(records):
    return [record.id for record in records]


def test_empty_filters_drop_only_the_excluded_title(records) -> None:
    assert ids(filter_payments(records)) == ["r1", "r2", "r3", "r4"]
    assert ids(filter_payments(records, AdminPaymentsFilters(university="all", fee_type=[]))) == ["r1", "r2", "r3", "r4"]


def test_excluded_titles_are_configurable(records) -> None:
    assert ids(filter_payments(records, excluded_titles=())) == ["r1", "r2", "r3", "r4", "r5"]


@pytest.mark.parametrize(
    "term, expected",
    [
        ("ana", ["r1"]),
        ("BRUNO@", ["r2"]),
        ("city college", ["r2"]),
        ("business", ["r3"]),
        ("  ", ["r1", "r2", "r3", "r4"]),
    ],
)
def test_search_is_case_insensitive_substring(records, term, expected) -> None:
    assert ids(filter_payments(records, AdminPaymentsFilters(search=term))) == expected


def test_exact_match_filters_accept_lists(records) -> None:
    filters = AdminPaymentsFilters(university=["uni-2"], fee_type="scholarship", status=["pending", "paid"])
    assert ids(filter_payments(records, filters)) == ["r2"]
    assert ids(filter_payments(records, AdminPaymentsFilters(status="pending"))) == ["r2"]
    assert ids(filter_payments(records, AdminPaymentsFilters(fee_type=["all", "scholarship"]))) == ["r1", "r2", "r3", "r4"]


def test_filters_are_anded(records) -> None:
    """A record passes only if every predicate passes on its own."""
    filters = AdminPaymentsFilters(search="student", university="uni-1", payment_method="outside")
    single = [
        AdminPaymentsFilters(search="student"),
        AdminPaymentsFilters(university="uni-1"),
        AdminPaymentsFilters(payment_method="outside"),
    ]
    expected = [
        r.id for r in records
        if all(record_matches(r, f) for f in single)
    ]
    assert ids(filter_payments(records, filters)) == expected == ["r3"]


@pytest.mark.parametrize(
    "option, expected",
    [
        ("stripe", ["r1"]),
        ("pix", ["r4"]),
        ("zelle", ["r2"]),
        ("outside", ["r3"]),
        (["pix", "zelle"], ["r2", "r4"]),
    ],
)
def test_payment_method_options(records, option, expected) -> None:
    assert ids(filter_payments(records, AdminPaymentsFilters(payment_method=option))) == expected


def test_pix_flag_in_metadata() -> None:
    record = make_record("r", metadata={"is_pix": True})
    assert matches_payment_method(record, "pix")
    assert not matches_payment_method(record, "stripe")


def test_affiliate_resolution_direct_and_through_sellers() -> None:
    assert resolve_affiliate("AFF2", AFFILIATES).id == "aff-2"
    assert resolve_affiliate("SELL1", AFFILIATES).id == "aff-1"
    assert resolve_affiliate("NOPE", AFFILIATES) is None
    assert resolve_affiliate(None, AFFILIATES) is None


def test_affiliate_filter(records) -> None:
    assert ids(filter_payments(records, AdminPaymentsFilters(affiliate="aff-1"), AFFILIATES)) == ["r1"]
    assert ids(filter_payments(records, AdminPaymentsFilters(affiliate=["aff-1", "aff-2"]), AFFILIATES)) == ["r1", "r2"]
    assert ids(filter_payments(records, AdminPaymentsFilters(affiliate="aff-1"))) == []


def test_date_range_is_inclusive_and_falls_back_to_created_at(records) -> None:
    filters = AdminPaymentsFilters(date_from="2024-02-15T00:00:00+00:00", date_to="2024-03-10")
    assert ids(filter_payments(records, filters)) == ["r1", "r3"]


def test_bare_date_to_covers_whole_day() -> None:
    filters = AdminPaymentsFilters(date_to="2024-03-10")
    assert filters.date_to == datetime(2024, 3, 10, 23, 59, 59, 999999)


def test_blank_dates_are_unset(records) -> None:
    filters = AdminPaymentsFilters(date_from="", date_to="")
    assert filters.date_from is None and filters.date_to is None
    assert len(filter_payments(records, filters)) == 4


def test_record_without_dates_excluded_by_date_filter() -> None:
    record = make_record("r", created_at=None)
    assert not record_matches(record, AdminPaymentsFilters(date_from=datetime(2024, 1, 1, tzinfo=timezone.utc)))
    assert record_matches(record, AdminPaymentsFilters())
