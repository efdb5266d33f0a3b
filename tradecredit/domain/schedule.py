"""Payment schedule generation for credit drawdowns"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Iterable, List

from tradecredit.domain.exceptions import InvalidInput
from tradecredit.domain.models import ObligationKind, PaymentObligation
from tradecredit.domain.money import apply_percent, split_with_remainder, to_percent
from tradecredit.utils.date_utils import add_calendar_days


def normalize_terms(terms_days: Iterable[int]) -> tuple:
    """Validate installment terms and return them as a sorted tuple of unique days"""
    terms = list(terms_days or [])
    if not terms:
        raise InvalidInput("At least one payment term is required")
    for term in terms:
        if isinstance(term, bool) or not isinstance(term, int) or term <= 0:
            raise InvalidInput(f"Payment terms must be positive day counts, got {term!r}")
    if len(set(terms)) != len(terms):
        raise InvalidInput("Payment terms must not repeat")
    return tuple(sorted(terms))


def generate_payment_schedule(
    import_id: uuid.UUID,
    drawn_cents: int,
    down_payment_percent: Decimal,
    terms_days: Iterable[int],
    drawdown_date: date,
) -> List[PaymentObligation]:
    """
    Generate the obligation set for one drawdown.

    Requirements:
    - Down payment = drawn x percent / 100, rounded half-up, due on the drawdown date
    - One installment per term, due drawdown_date + term (terms ascending)
    - Installments are floor(financed / n); the last absorbs the remainder
    - Down payment + installments sum exactly to drawn_cents

    Args:
        import_id: Import the schedule belongs to
        drawn_cents: Drawn value in minor units
        down_payment_percent: Percentage in [0, 100]
        terms_days: Installment terms in days, e.g. [30, 60, 90]
        drawdown_date: Date the import was confirmed

    Returns:
        Down payment obligation followed by installments. When the down
        payment covers the whole value no installment rows are produced.

    Example:
        20000 at 30% over [30, 60, 90]
        down payment 6000, financed 14000 -> [4666, 4666, 4668]
    """
    terms = normalize_terms(terms_days)
    percent = to_percent(down_payment_percent)
    if drawn_cents < 0:
        raise InvalidInput("Drawn value cannot be negative")

    down_payment = apply_percent(drawn_cents, percent)
    financed = drawn_cents - down_payment

    installment_amounts = split_with_remainder(financed, len(terms)) if financed > 0 else []
    installment_count = len(installment_amounts)

    obligations = [
        PaymentObligation(
            import_id=import_id,
            kind=ObligationKind.DOWN_PAYMENT,
            sequence_number=0,
            total_in_installment_set=installment_count,
            amount_cents=down_payment,
            due_date=drawdown_date,
        )
    ]
    for i, amount in enumerate(installment_amounts):
        obligations.append(
            PaymentObligation(
                import_id=import_id,
                kind=ObligationKind.INSTALLMENT,
                sequence_number=i + 1,
                total_in_installment_set=installment_count,
                amount_cents=amount,
                due_date=add_calendar_days(drawdown_date, terms[i]),
            )
        )

    return obligations
