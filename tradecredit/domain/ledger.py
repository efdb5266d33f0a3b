"""Credit ledger - the single gate on how much an importer may draw"""

from dataclasses import dataclass
from typing import Iterable

from tradecredit.domain.exceptions import InsufficientCredit, InvalidInput
from tradecredit.domain.models import AdminFinalStatus, CreditApplication, Import
from tradecredit.domain.money import format_cents


def granted_limit(application: CreditApplication) -> int:
    """Limit an application contributes: final override, else the financial offer"""
    if application.admin_final_status != AdminFinalStatus.FINALIZED:
        return 0
    terms = application.effective_terms
    return terms.credit_limit_cents if terms else 0


def total_granted_limit(applications: Iterable[CreditApplication]) -> int:
    """Sum of limits over finalized applications; multiple finalizations accumulate"""
    return sum(granted_limit(app) for app in applications)


def total_drawn(imports: Iterable[Import]) -> int:
    """
    Sum of import values currently consuming credit.

    Draws are pooled across every finalized application of the importer.
    Cancelled imports and cash imports (no application) do not count.
    """
    return sum(imp.total_value_cents for imp in imports if imp.draws_credit)


@dataclass
class CreditLedger:
    """Maintained per-importer aggregate of granted and drawn credit"""

    importer_id: str
    granted_cents: int = 0
    drawn_cents: int = 0
    version: int = 0

    @property
    def available_cents(self) -> int:
        return self.granted_cents - self.drawn_cents

    def authorize_drawdown(self, requested_cents: int, currency: str = "USD") -> None:
        """
        Veto a drawdown that would push available credit below zero.

        Raises:
            InvalidInput: requested value is not positive
            InsufficientCredit: requested value exceeds available credit
        """
        if requested_cents <= 0:
            raise InvalidInput("Drawdown value must be positive")
        if requested_cents > self.available_cents:
            raise InsufficientCredit(
                f"Requested {format_cents(requested_cents, currency)} exceeds available "
                f"{format_cents(self.available_cents, currency)}",
                available_cents=self.available_cents,
            )

    @classmethod
    def from_history(
        cls,
        importer_id: str,
        applications: Iterable[CreditApplication],
        imports: Iterable[Import],
    ) -> "CreditLedger":
        """Recompute the aggregate from application and import rows"""
        return cls(
            importer_id=importer_id,
            granted_cents=total_granted_limit(applications),
            drawn_cents=total_drawn(imports),
        )
