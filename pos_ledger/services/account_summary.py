"""Outstanding balance and credit limit checks."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from pos_ledger.models.schemas import Debt, Invoice, LedgerSide, Partner, Payment
from pos_ledger.services.debt_catalog import DebtCatalogBuilder, collect_debts, order_debts
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)


@dataclass
class CreditLimitCheck:
    current_debt: float
    additional_debt: float
    projected_debt: float
    credit_limit: Optional[float]
    exceeded: bool

    @property
    def headroom(self) -> Optional[float]:
        if self.credit_limit is None:
            return None
        return round_amount(self.credit_limit - self.projected_debt)


@dataclass
class AccountSummary:
    partner: Partner
    side: LedgerSide
    outstanding: float
    credit_balance: float
    debts: List[Debt] = field(default_factory=list)
    credit_limit: Optional[CreditLimitCheck] = None

    @property
    def net_balance(self) -> float:
        """What the partner owes once their credit is taken into account."""
        return round_amount(self.outstanding - self.credit_balance)


def outstanding_balance(partner: Partner, invoices: Iterable[Invoice], opening_payments: Iterable[Payment]) -> float:
    """Opening remainder plus the unpaid part of every invoice."""
    opening_paid = sum(p.amount for p in opening_payments)
    opening = max(partner.opening_balance - opening_paid, 0.0) if partner.opening_balance > 0 else 0.0
    unpaid = sum(max(invoice.remaining, 0.0) for invoice in invoices)
    return round_amount(opening + unpaid)


def check_credit_limit(partner: Partner, current_debt: float, additional_debt: float = 0.0) -> CreditLimitCheck:
    """
    Project the debt after a new unpaid amount against the partner's limit.

    Only partners flagged as credit limited are checked; a missing limit on
    such a partner counts as zero.
    """
    projected = round_amount(current_debt + additional_debt)
    limit = None
    exceeded = False
    if partner.is_credit_limited:
        limit = partner.credit_limit or 0.0
        exceeded = projected > limit
        if exceeded:
            logger.warning(f"Partner {partner.id} would exceed credit limit {limit:g} with {projected:g}")
    return CreditLimitCheck(current_debt, additional_debt, projected, limit, exceeded)


class AccountSummaryService:
    """Read-only overview of a partner's account."""

    def __init__(self, catalog_builder: DebtCatalogBuilder):
        self.catalog_builder = catalog_builder

    async def summarize(self, side: LedgerSide, partner_id: str, additional_debt: float = 0.0) -> AccountSummary:
        partner, invoices, opening_payments = await self.catalog_builder.load_state(side, partner_id)
        outstanding = outstanding_balance(partner, invoices, opening_payments)
        return AccountSummary(
            partner=partner,
            side=side,
            outstanding=outstanding,
            credit_balance=partner.credit_balance,
            debts=order_debts(collect_debts(partner, invoices, opening_payments)),
            credit_limit=check_credit_limit(partner, outstanding, additional_debt),
        )
