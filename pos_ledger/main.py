"""Command-line entry point for the ledger reconciliation engine.

Runs statements, account summaries and payment operations against Firestore,
or against a JSON snapshot of the collections when --data-file is given.
"""

import sys
import logging
import asyncio
import argparse
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from pos_ledger.config import COLLECTION_PREFIX, DEFAULT_PAYMENT_METHOD
from pos_ledger.exceptions import LedgerError
from pos_ledger.mocks.in_memory_dao import InMemoryDAO
from pos_ledger.models.schemas import LedgerSide, Statement, parse_debt_ref
from pos_ledger.repositories import (
    CreditNoteRepository, FirestoreDAO, InvoiceRepository, PartnerRepository, PaymentRepository,
)
from pos_ledger.services import (
    AccountSummaryService, CreditNoteService, DebtCatalogBuilder, PaymentAllocator, PaymentRequest,
    ReversalEngine, StatementProjector,
)
from pos_ledger.utils.parsing import parse_date

WRITE_COMMANDS = ("pay", "delete-payment", "edit-payment", "credit-note", "delete-credit-note")


@dataclass
class LedgerServices:
    catalog: DebtCatalogBuilder
    allocator: PaymentAllocator
    reversals: ReversalEngine
    statements: StatementProjector
    summaries: AccountSummaryService
    credit_notes: CreditNoteService


def build_services(dao) -> LedgerServices:
    """Wire repositories and services around one DAO."""
    partner_repo = PartnerRepository(dao)
    invoice_repo = InvoiceRepository(dao)
    payment_repo = PaymentRepository(dao)
    catalog = DebtCatalogBuilder(partner_repo, invoice_repo, payment_repo)
    return LedgerServices(
        catalog=catalog,
        allocator=PaymentAllocator(dao, catalog),
        reversals=ReversalEngine(dao, partner_repo, invoice_repo, payment_repo),
        statements=StatementProjector(partner_repo, invoice_repo, payment_repo),
        summaries=AccountSummaryService(catalog),
        credit_notes=CreditNoteService(dao, partner_repo, payment_repo, CreditNoteRepository(dao)),
    )


def _money(value: float) -> str:
    return f"{value:,.2f}".replace(",", " ")


def print_statement(statement: Statement) -> None:
    print(f"Relevé de compte: {statement.partner.name} ({statement.partner.id})")
    for movement in statement.movements:
        day = movement.date.strftime("%Y-%m-%d") if movement.date else "----------"
        print(f"{day}  {movement.ref:<20} {movement.description:<40} "
              f"{_money(movement.debit):>14} {_money(movement.credit):>14} {_money(movement.balance):>14}")
    print(f"Total débit: {_money(statement.total_debit)}  Total crédit: {_money(statement.total_credit)}  "
          f"Solde: {_money(statement.balance)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="POS ledger reconciliation engine")
    parser.add_argument("--side", choices=[side.value for side in LedgerSide], default=LedgerSide.SALES.value,
                        help="Customers and sales, or suppliers and purchases")
    parser.add_argument("--data-file", help="Work on a JSON snapshot of the collections instead of Firestore")
    parser.add_argument("--user", help="User id recorded on created or deleted payments")
    subparsers = parser.add_subparsers(dest="command", required=True)

    statement = subparsers.add_parser("statement", help="Print a partner's account statement")
    statement.add_argument("partner_id")

    summary = subparsers.add_parser("summary", help="Outstanding debts, credit and credit limit")
    summary.add_argument("partner_id")
    summary.add_argument("--additional", type=float, default=0.0, help="New unpaid amount to check against the limit")

    pay = subparsers.add_parser("pay", help="Record a payment and allocate it across open debts")
    pay.add_argument("partner_id")
    pay.add_argument("amount", type=float)
    pay.add_argument("--debt", help="Debt to settle first (invoice id or OPENING_BALANCE_<partner>)")
    pay.add_argument("--method", default=DEFAULT_PAYMENT_METHOD)
    pay.add_argument("--notes", default="")
    pay.add_argument("--date", help="Payment date, YYYY-MM-DD")
    pay.add_argument("--confirm-surplus", action="store_true", help="Accept that a large surplus becomes credit")
    pay.add_argument("--momo-operator", help="Mobile Money operator")
    pay.add_argument("--momo-number", help="Mobile Money transaction number")

    delete = subparsers.add_parser("delete-payment", help="Delete a payment and restore balances")
    delete.add_argument("payment_id")
    delete.add_argument("--reason", required=True)

    edit = subparsers.add_parser("edit-payment", help="Change a payment's amount in place")
    edit.add_argument("payment_id")
    edit.add_argument("amount", type=float)
    edit.add_argument("--method")
    edit.add_argument("--notes")
    edit.add_argument("--date", help="Payment date, YYYY-MM-DD")
    edit.add_argument("--momo-operator")
    edit.add_argument("--momo-number")

    note = subparsers.add_parser("credit-note", help="Issue a credit note to a customer")
    note.add_argument("customer_id")
    note.add_argument("amount", type=float)
    note.add_argument("--reason", required=True)

    delete_note = subparsers.add_parser("delete-credit-note", help="Cancel an unspent credit note")
    delete_note.add_argument("credit_note_id")
    delete_note.add_argument("--reason", required=True)
    return parser


async def run(args: argparse.Namespace, dao) -> None:
    side = LedgerSide(args.side)
    services = build_services(dao)

    if args.command == "statement":
        print_statement(await services.statements.load(side, args.partner_id))

    elif args.command == "summary":
        summary = await services.summaries.summarize(side, args.partner_id, args.additional)
        print(f"{summary.partner.name}: dû {_money(summary.outstanding)}, avoir {_money(summary.credit_balance)}, "
              f"net {_money(summary.net_balance)}")
        for debt in summary.debts:
            day = debt.date.strftime("%Y-%m-%d") if debt.date and debt.date.year > 1 else "----------"
            print(f"  {day}  {debt.ref_label:<20} {_money(debt.remaining):>14}")
        check = summary.credit_limit
        if check.exceeded:
            print(f"ALERTE LIMITE DE CRÉDIT: {_money(check.projected_debt)} > {_money(check.credit_limit)}")

    elif args.command == "pay":
        request = PaymentRequest(
            partner_id=args.partner_id,
            amount=args.amount,
            selected=parse_debt_ref(args.debt) if args.debt else None,
            method=args.method,
            notes=args.notes,
            date=parse_date(args.date),
            created_by=args.user,
            confirm_surplus=args.confirm_surplus,
            momo_operator=args.momo_operator,
            momo_number=args.momo_number,
        )
        plan = await services.allocator.record_payment(side, request)
        for payment in plan.payments:
            print(f"{payment.id}  {payment.debt_ref.to_storage_id():<40} {_money(payment.amount):>14}")
        print(f"Avoir: {_money(plan.credit_balance_before)} -> {_money(plan.credit_balance_after)}")

    elif args.command == "delete-payment":
        plan = await services.reversals.delete_payment(side, args.payment_id, args.reason, args.user)
        print(f"Paiement {plan.payment.id} supprimé ({_money(plan.payment.amount)})")

    elif args.command == "edit-payment":
        plan = await services.reversals.edit_payment(
            side, args.payment_id, args.amount, date=parse_date(args.date), method=args.method, notes=args.notes,
            momo_operator=args.momo_operator, momo_number=args.momo_number,
        )
        print(f"Paiement {plan.payment.id}: {_money(plan.previous_amount)} -> {_money(plan.payment.amount)}")

    elif args.command == "credit-note":
        note = await services.credit_notes.issue(args.customer_id, args.amount, args.reason, args.user)
        print(f"{note.reference_number}  {note.id}  {_money(note.amount)}")

    elif args.command == "delete-credit-note":
        note = await services.credit_notes.delete(args.credit_note_id, args.reason, args.user)
        print(f"Note {note.reference_number} supprimée ({_money(note.amount)})")


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.data_file:
        dao = InMemoryDAO.from_json_file(args.data_file)
    else:
        dao = FirestoreDAO(collection_prefix=COLLECTION_PREFIX)

    try:
        asyncio.run(run(args, dao))
    except LedgerError as e:
        logger.error(f"{args.command} failed: {e.error_code}")
        print(e.message, file=sys.stderr)
        return 1

    if args.data_file and args.command in WRITE_COMMANDS:
        dao.dump_json_file(args.data_file)
        logger.info(f"Saved changes to {args.data_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
