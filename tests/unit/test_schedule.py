"""Unit tests for payment schedule generation"""

import pytest
import uuid
from datetime import date, timedelta
from decimal import Decimal
from tradecredit.domain.exceptions import InvalidInput
from tradecredit.domain.models import ObligationKind, ObligationStatus
from tradecredit.domain.schedule import generate_payment_schedule, normalize_terms

IMPORT_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
DRAWDOWN = date(2025, 3, 3)


def test_generate_schedule_down_payment_and_remainder():
    """20000 at 30% -> 6000 down, 14000 financed as 4666 / 4666 / 4668"""
    obligations = generate_payment_schedule(IMPORT_ID, 20000, Decimal("30"), [30, 60, 90], DRAWDOWN)

    assert [o.kind for o in obligations] == [
        ObligationKind.DOWN_PAYMENT,
        ObligationKind.INSTALLMENT,
        ObligationKind.INSTALLMENT,
        ObligationKind.INSTALLMENT,
    ]
    assert [o.amount_cents for o in obligations] == [6000, 4666, 4666, 4668]
    assert sum(o.amount_cents for o in obligations) == 20000
    assert all(o.status == ObligationStatus.PENDING for o in obligations)


def test_generate_schedule_dates():
    """Down payment due on drawdown; installments at drawdown + term"""
    obligations = generate_payment_schedule(IMPORT_ID, 20000, Decimal("30"), [30, 60, 90], DRAWDOWN)

    assert obligations[0].due_date == DRAWDOWN
    assert obligations[1].due_date == DRAWDOWN + timedelta(days=30)
    assert obligations[2].due_date == DRAWDOWN + timedelta(days=60)
    assert obligations[3].due_date == DRAWDOWN + timedelta(days=90)


def test_generate_schedule_sorts_terms():
    obligations = generate_payment_schedule(IMPORT_ID, 9000, Decimal("0"), [90, 30, 60], DRAWDOWN)

    installments = obligations[1:]
    assert [o.sequence_number for o in installments] == [1, 2, 3]
    assert [o.due_date for o in installments] == [
        DRAWDOWN + timedelta(days=30),
        DRAWDOWN + timedelta(days=60),
        DRAWDOWN + timedelta(days=90),
    ]
    assert all(o.total_in_installment_set == 3 for o in obligations)


def test_generate_schedule_zero_down_payment():
    """0% still produces a zero down-payment line for audit consistency"""
    obligations = generate_payment_schedule(IMPORT_ID, 10000, Decimal("0"), [30, 60], DRAWDOWN)

    assert obligations[0].kind == ObligationKind.DOWN_PAYMENT
    assert obligations[0].amount_cents == 0
    assert [o.amount_cents for o in obligations[1:]] == [5000, 5000]


def test_generate_schedule_full_down_payment():
    """100% leaves nothing financed: a single down-payment line, no installments"""
    obligations = generate_payment_schedule(IMPORT_ID, 10000, Decimal("100"), [30, 60, 90], DRAWDOWN)

    assert len(obligations) == 1
    assert obligations[0].kind == ObligationKind.DOWN_PAYMENT
    assert obligations[0].amount_cents == 10000
    assert obligations[0].total_in_installment_set == 0


@pytest.mark.parametrize("drawn", [1, 7, 999, 20000, 123457, 10_000_001])
@pytest.mark.parametrize("terms", [[30], [30, 60], [15, 30, 45, 60, 75, 90]])
@pytest.mark.parametrize("percent", ["0", "12.5", "33.33", "100"])
def test_generate_schedule_sums_exactly(drawn, terms, percent):
    obligations = generate_payment_schedule(IMPORT_ID, drawn, Decimal(percent), terms, DRAWDOWN)
    assert sum(o.amount_cents for o in obligations) == drawn


@pytest.mark.parametrize(
    "terms,percent",
    [
        ([], "30"),
        ([0, 30], "30"),
        ([-30], "30"),
        ([30, 30], "30"),
        ([30], "-1"),
        ([30], "101"),
    ],
)
def test_generate_schedule_invalid_input(terms, percent):
    with pytest.raises(InvalidInput):
        generate_payment_schedule(IMPORT_ID, 10000, Decimal(percent), terms, DRAWDOWN)


def test_normalize_terms_rejects_non_integers():
    with pytest.raises(InvalidInput):
        normalize_terms([30, "60"])
    with pytest.raises(InvalidInput):
        normalize_terms([True])
