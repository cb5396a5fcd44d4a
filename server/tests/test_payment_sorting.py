"""Unit tests for payment record ordering."""

import pytest

from factories import make_record
from scholarpay.models.schemas import FeeType, PaymentMethod, SortField, SortOrder
from scholarpay.services.payment_sorting import sort_payments, sort_value


@pytest.fixture()
def records():
    return [
        make_record("r1", student_name="carla", amount=55000, field_of_study="Law",
                    payment_date="2024-03-01T00:00:00+00:00", fee_type=FeeType.SCHOLARSHIP),
        make_record("r2", student_name="Ana", amount=35000, field_of_study=None,
                    payment_date="2024-01-15T00:00:00+00:00", payment_method=PaymentMethod.ZELLE),
        make_record("r3", student_name="bruno", amount=90000, field_of_study="biology",
                    payment_date=None, fee_type=FeeType.I20_CONTROL),
        make_record("r4", student_name="Diego", amount=40000, field_of_study=None,
                    payment_date="2024-02-10T00:00:00+00:00", payment_method=PaymentMethod.MANUAL),
    ]


def ids(records):
    return [record.id for record in records]


def test_default_is_payment_date_descending(records) -> None:
    """Missing payment dates sort as the epoch."""
    assert ids(sort_payments(records)) == ["r1", "r4", "r2", "r3"]


def test_amount_is_numeric(records) -> None:
    assert ids(sort_payments(records, SortField.AMOUNT, SortOrder.ASC)) == ["r2", "r4", "r1", "r3"]


def test_strings_compare_case_insensitively(records) -> None:
    assert ids(sort_payments(records, "student_name", "asc")) == ["r2", "r3", "r1", "r4"]


def test_nulls_last_in_both_directions(records) -> None:
    assert ids(sort_payments(records, SortField.FIELD_OF_STUDY, SortOrder.ASC)) == ["r3", "r1", "r2", "r4"]
    assert ids(sort_payments(records, SortField.FIELD_OF_STUDY, SortOrder.DESC)) == ["r1", "r3", "r2", "r4"]


@pytest.mark.parametrize(
    "field",
    [SortField.AMOUNT, SortField.STUDENT_NAME, SortField.PAYMENT_DATE, SortField.FIELD_OF_STUDY, SortField.ID],
)
def test_ascending_reversed_equals_descending(records, field) -> None:
    asc = sort_payments(records, field, SortOrder.ASC)
    desc = sort_payments(records, field, SortOrder.DESC)
    present = [r for r in asc if sort_value(r, field) is not None]
    missing = [r for r in asc if sort_value(r, field) is None]
    assert ids(desc) == ids(list(reversed(present)) + missing)


@pytest.mark.parametrize("field", [SortField.AMOUNT, SortField.PAYMENT_DATE, SortField.PAYMENT_METHOD])
def test_descending_reverses_ties_too(field) -> None:
    """Equal amounts and missing payment dates are ties; desc still mirrors asc."""
    tied = [
        make_record("a", amount=10000, payment_date=None),
        make_record("b", amount=10000, payment_date=None),
        make_record("c", amount=5000, payment_date="2024-01-01T00:00:00+00:00"),
    ]
    asc = sort_payments(tied, field, SortOrder.ASC)
    desc = sort_payments(tied, field, SortOrder.DESC)
    assert ids(desc) == ids(list(reversed(asc)))


def test_tied_amounts_order() -> None:
    tied = [make_record("a", amount=10000), make_record("b", amount=10000), make_record("c", amount=5000)]
    assert ids(sort_payments(tied, SortField.AMOUNT, SortOrder.ASC)) == ["c", "a", "b"]
    assert ids(sort_payments(tied, SortField.AMOUNT, SortOrder.DESC)) == ["b", "a", "c"]


def test_enum_fields_sort_by_value(records) -> None:
    assert ids(sort_payments(records, SortField.PAYMENT_METHOD, SortOrder.ASC)) == ["r4", "r1", "r3", "r2"]


def test_sort_does_not_mutate_input(records) -> None:
    before = ids(records)
    sort_payments(records, SortField.AMOUNT)
    assert ids(records) == before
