"""
Payment allocation.

Splits an incoming payment across a partner's outstanding debts in catalog
order, turns what is left into credit, and commits every resulting write
(payments, invoice settlements, credit balance) in a single transaction.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pos_ledger.config import (
    CREDIT_ACCOUNT_METHOD, DEFAULT_PAYMENT_METHOD, DEFAULT_PAYMENT_NOTE, MOBILE_MONEY_METHOD,
    SETTLEMENT_EPSILON, SURPLUS_CONFIRMATION_TOLERANCE,
)
from pos_ledger.exceptions import (
    InvalidAmountError, MissingMobileMoneyDetailsError, OverpaymentError, SurplusConfirmationRequired,
)
from pos_ledger.models.schemas import (
    CreditAccountDebt, Debt, DebtKind, DebtRef, Invoice, InvoiceDebt, LedgerSide,
    OpeningBalanceDebt, Partner, Payment, PaymentStatus, derive_payment_status,
)
from pos_ledger.services.credit_balance import CreditBalanceManager
from pos_ledger.services.debt_catalog import DebtCatalogBuilder, collect_debts, opening_debt, order_debts
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)


@dataclass
class PaymentRequest:
    """A payment as entered by the operator."""
    partner_id: str
    amount: float
    selected: Optional[DebtRef] = None
    method: str = DEFAULT_PAYMENT_METHOD
    notes: str = ""
    date: Optional[datetime] = None
    created_by: Optional[str] = None
    # Set once the operator accepted that a large overpayment becomes credit
    confirm_surplus: bool = False
    # Debts the operator was shown; re-read and re-validated at commit time
    catalog: Optional[List[Debt]] = None
    momo_operator: Optional[str] = None
    momo_number: Optional[str] = None

    @property
    def funded_by_credit(self) -> bool:
        return self.method == CREDIT_ACCOUNT_METHOD

    def check_method_details(self) -> None:
        if self.method == MOBILE_MONEY_METHOD and not (self.momo_operator and self.momo_number):
            raise MissingMobileMoneyDetailsError(self.momo_operator, self.momo_number)


@dataclass
class InvoiceUpdate:
    invoice_id: str
    previous_paid_amount: float
    paid_amount: float
    payment_status: PaymentStatus


@dataclass
class AllocationPlan:
    """Everything one payment changes, computed before any write."""
    partner_id: str
    amount: float
    total_debt: float
    payments: List[Payment] = field(default_factory=list)
    invoice_updates: List[InvoiceUpdate] = field(default_factory=list)
    credit_balance_before: float = 0.0
    credit_balance_after: float = 0.0
    surplus: float = 0.0
    skipped_debts: List[str] = field(default_factory=list)

    @property
    def credit_delta(self) -> float:
        return round_amount(self.credit_balance_after - self.credit_balance_before)


def _payment_note(request: PaymentRequest, debt: Debt, debt_count: int) -> str:
    note = request.notes or DEFAULT_PAYMENT_NOTE
    if debt_count > 1 and debt.debt_ref != request.selected:
        note += f" (Répartition auto: {debt.ref_label})"
    return note


def _settlement_targets(debts: List[Debt], invoices: Dict[str, Invoice], skipped: List[str]) -> List[Debt]:
    """Refresh invoice debts with their current remaining amount, dropping stale and settled ones."""
    targets = []
    for debt in debts:
        if isinstance(debt.debt_ref, InvoiceDebt):
            invoice = invoices.get(debt.debt_ref.invoice_id)
            if invoice is None:
                logger.warning(f"StaleDebtReference: invoice {debt.debt_id} no longer exists, skipping it")
                skipped.append(debt.debt_id)
                continue
            remaining = round_amount(invoice.remaining)
            if remaining <= SETTLEMENT_EPSILON:
                continue
            debt = Debt(debt.debt_ref, debt.kind, remaining, debt.date, debt.ref_label)
        targets.append(debt)
    return targets


def plan_allocation(partner: Partner, debts: List[Debt], invoices: Dict[str, Invoice], request: PaymentRequest,
                    id_factory: Callable[[], str] = None) -> AllocationPlan:
    """
    Compute the payments, invoice updates and credit change for a payment.

    Args:
        partner: Partner as read in the current transaction
        debts: Debt catalog in settlement order
        invoices: Current state of the catalog's invoices, by id
        request: The payment to allocate
        id_factory: Produces ids for new payment documents

    Returns:
        AllocationPlan whose payment amounts add up to request.amount

    Raises:
        InvalidAmountError: amount is not positive
        MissingMobileMoneyDetailsError: Mobile Money without operator or number
        InsufficientCreditError: a credit-funded payment exceeds the credit balance
        OverpaymentError: a credit-funded payment exceeds the outstanding debt
        SurplusConfirmationRequired: the surplus is above tolerance and unconfirmed
    """
    id_factory = id_factory or (lambda: uuid.uuid4().hex[:20])
    amount = round_amount(request.amount) if request.amount is not None else None
    if amount is None or amount <= 0:
        raise InvalidAmountError(request.amount)
    request.check_method_details()

    credit_manager = CreditBalanceManager()
    credit_balance = partner.credit_balance
    if request.funded_by_credit:
        credit_manager.ensure_available(credit_balance, amount)

    plan = AllocationPlan(
        partner_id=partner.id,
        amount=amount,
        total_debt=0.0,
        credit_balance_before=credit_balance,
        credit_balance_after=credit_balance,
    )
    targets = _settlement_targets(debts, invoices, plan.skipped_debts)
    plan.total_debt = round_amount(sum(d.remaining for d in targets))

    excess = round_amount(amount - plan.total_debt)
    if request.funded_by_credit and excess > SETTLEMENT_EPSILON:
        raise OverpaymentError(amount, plan.total_debt)
    if excess > SURPLUS_CONFIRMATION_TOLERANCE and not request.confirm_surplus:
        raise SurplusConfirmationRequired(amount, plan.total_debt)

    updates: Dict[str, InvoiceUpdate] = {}

    def settle(debt: Debt, pay: float) -> None:
        plan.payments.append(Payment(
            id=id_factory(),
            debt_ref=debt.debt_ref,
            amount=pay,
            date=request.date,
            method=request.method,
            notes=_payment_note(request, debt, len(targets)),
            created_by=request.created_by,
            partner_id=partner.id,
            momo_operator=request.momo_operator,
            momo_number=request.momo_number,
        ))
        if debt.kind == DebtKind.INVOICE:
            invoice = invoices[debt.debt_ref.invoice_id]
            paid = round_amount(invoice.paid_amount + pay)
            updates[invoice.id] = InvoiceUpdate(
                invoice.id, invoice.paid_amount, paid, derive_payment_status(paid, invoice.grand_total)
            )

    remaining_local = amount
    for debt in targets:
        if remaining_local <= SETTLEMENT_EPSILON:
            break
        pay = round_amount(min(remaining_local, debt.remaining))
        if pay <= SETTLEMENT_EPSILON:
            continue
        settle(debt, pay)
        remaining_local = round_amount(remaining_local - pay)

    if remaining_local > 0 and not plan.payments and targets:
        # A payment within tolerance still goes to the first debt when one is open
        settle(targets[0], remaining_local)
    elif remaining_local > SETTLEMENT_EPSILON or (remaining_local > 0 and not plan.payments):
        if request.funded_by_credit:
            raise OverpaymentError(amount, plan.total_debt)
        plan.surplus = remaining_local
        plan.payments.append(Payment(
            id=id_factory(),
            debt_ref=CreditAccountDebt(partner.id),
            amount=remaining_local,
            date=request.date,
            method=request.method,
            notes=request.notes or DEFAULT_PAYMENT_NOTE,
            created_by=request.created_by,
            partner_id=partner.id,
            momo_operator=request.momo_operator,
            momo_number=request.momo_number,
        ))
    elif remaining_local > 0:
        # Dust below the settlement tolerance goes to the last debt paid
        last = plan.payments[-1]
        last.amount = round_amount(last.amount + remaining_local)
        if isinstance(last.debt_ref, InvoiceDebt):
            update = updates[last.debt_ref.invoice_id]
            update.paid_amount = round_amount(update.paid_amount + remaining_local)
            update.payment_status = derive_payment_status(
                update.paid_amount, invoices[update.invoice_id].grand_total
            )

    plan.invoice_updates = list(updates.values())

    if request.funded_by_credit:
        credit_balance = credit_manager.debit(credit_balance, amount)
    if plan.surplus > 0:
        credit_balance = credit_manager.credit(credit_balance, plan.surplus)
    plan.credit_balance_after = credit_balance
    return plan


class PaymentAllocator:
    """Records payments against a partner's account."""

    def __init__(self, dao, catalog_builder: DebtCatalogBuilder):
        self.dao = dao
        self.catalog_builder = catalog_builder
        self.partner_repo = catalog_builder.partner_repo
        self.invoice_repo = catalog_builder.invoice_repo
        self.payment_repo = catalog_builder.payment_repo

    async def _read_snapshot(self, side: LedgerSide, request: PaymentRequest, transaction):
        """Re-read the debts the operator was shown, in their current state."""
        partner = await self.partner_repo.require(side, request.partner_id, transaction)
        refs = {debt.debt_ref for debt in request.catalog}
        invoice_ids = [ref.invoice_id for ref in refs if isinstance(ref, InvoiceDebt)]
        invoices = await self.invoice_repo.get_many(side, invoice_ids, transaction)

        debts = [debt for debt in request.catalog if isinstance(debt.debt_ref, InvoiceDebt)]
        opening_ref = OpeningBalanceDebt(partner.id)
        if opening_ref in refs and partner.opening_balance > 0:
            opening_payments = await self.payment_repo.get_by_debt(side, opening_ref, transaction)
            opening = opening_debt(partner, opening_payments)
            if opening is not None:
                debts.append(opening)
        return partner, order_debts(debts, request.selected), invoices

    async def _read_current(self, side: LedgerSide, request: PaymentRequest, transaction):
        partner, invoices, opening_payments = await self.catalog_builder.load_state(
            side, request.partner_id, transaction
        )
        debts = order_debts(collect_debts(partner, invoices, opening_payments), request.selected)
        return partner, debts, {invoice.id: invoice for invoice in invoices}

    async def record_payment(self, side: LedgerSide, request: PaymentRequest) -> AllocationPlan:
        """
        Allocate and commit a payment.

        All reads happen first, then the plan is computed, then every write is
        staged; the store commits them together or not at all.

        Returns:
            The committed AllocationPlan
        """
        if request.amount is None or request.amount <= 0:
            raise InvalidAmountError(request.amount)
        request.check_method_details()
        if request.date is None:
            request = replace(request, date=datetime.utcnow())

        async def _allocate(transaction) -> AllocationPlan:
            if request.catalog is not None:
                partner, debts, invoices = await self._read_snapshot(side, request, transaction)
            else:
                partner, debts, invoices = await self._read_current(side, request, transaction)

            plan = plan_allocation(
                partner, debts, invoices, request,
                id_factory=lambda: transaction.new_document_id(side.payment_collection)
            )

            for payment in plan.payments:
                self.payment_repo.stage_create(transaction, side, payment)
            for update in plan.invoice_updates:
                self.invoice_repo.stage_settlement(
                    transaction, side, update.invoice_id, update.paid_amount, update.payment_status
                )
            if plan.credit_delta != 0:
                self.partner_repo.stage_credit_balance(transaction, side, partner.id, plan.credit_balance_after)
            return plan

        try:
            plan = await self.dao.run_transaction(_allocate, operation="record_payment")
        except Exception as e:
            logger.error(f"Payment of {request.amount} for partner {request.partner_id} failed: {str(e)}")
            raise

        logger.info(
            f"Recorded payment of {plan.amount:g} for {side.value} partner {plan.partner_id}: "
            f"{len(plan.payments)} payment(s), {len(plan.invoice_updates)} invoice(s), "
            f"credit {plan.credit_balance_before:g} -> {plan.credit_balance_after:g}"
        )
        return plan
