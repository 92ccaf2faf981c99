"""
Tests for payment allocation across open debts.
"""

from datetime import datetime

import pytest

from pos_ledger.config import SALE_PAYMENTS_COLLECTION, SALES_COLLECTION, CUSTOMERS_COLLECTION, SETTLEMENT_EPSILON
from pos_ledger.exceptions import (
    InsufficientCreditError, InvalidAmountError, MissingMobileMoneyDetailsError, OverpaymentError,
    PartnerNotFoundError, SurplusConfirmationRequired,
)
from pos_ledger.models.schemas import (
    CreditAccountDebt, Debt, DebtKind, Invoice, InvoiceDebt, LedgerSide, OpeningBalanceDebt, Partner,
)
from pos_ledger.services.debt_catalog import collect_debts, order_debts
from pos_ledger.services.payment_allocator import PaymentRequest, plan_allocation

PAY_DATE = datetime(2024, 5, 1, 10, 0)


def _ids():
    counter = iter(range(1, 100))
    return lambda: f"pay{next(counter)}"


def _plan(partner, invoices, request):
    debts = order_debts(collect_debts(partner, invoices, []), request.selected)
    return plan_allocation(partner, debts, {i.id: i for i in invoices}, request, id_factory=_ids())


@pytest.mark.asyncio
async def test_scenario_a_selected_invoice_then_opening_balance(services, seed):
    seed.customer("c1", opening_balance=10000, opening_date="2023-01-01T00:00:00.000Z")
    seed.sale("s1", total=5000, paid=0, date="2024-03-01T00:00:00.000Z")

    plan = await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(
        partner_id="c1", amount=12000, selected=InvoiceDebt("s1"), date=PAY_DATE, created_by="u1",
    ))

    assert [(p.debt_ref, p.amount) for p in plan.payments] == [
        (InvoiceDebt("s1"), 5000),
        (OpeningBalanceDebt("c1"), 7000),
    ]
    assert plan.surplus == 0
    sale = seed.doc(SALES_COLLECTION, "s1")
    assert sale["paidAmount"] == 5000
    assert sale["paymentStatus"] == "Payé"

    stored = sorted(seed.docs(SALE_PAYMENTS_COLLECTION), key=lambda d: d["amount"])
    assert [d["saleId"] for d in stored] == ["s1", "OPENING_BALANCE_c1"]
    assert stored[0]["notes"] == "Règlement global"
    assert stored[1]["notes"] == "Règlement global (Répartition auto: SOLDE D'OUVERTURE)"
    assert stored[1]["createdByUserId"] == "u1"
    assert seed.doc(CUSTOMERS_COLLECTION, "c1")["creditBalance"] == 0

    catalog = await services.catalog.build(LedgerSide.SALES, "c1")
    assert [(d.debt_id, d.remaining) for d in catalog] == [("OPENING_BALANCE_c1", 3000)]


@pytest.mark.asyncio
async def test_scenario_b_payment_without_debts_becomes_credit(services, seed, dao):
    seed.customer("c1")

    plan = await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(
        partner_id="c1", amount=2000, confirm_surplus=True, date=PAY_DATE,
    ))

    assert [(p.debt_ref, p.amount) for p in plan.payments] == [(CreditAccountDebt("c1"), 2000)]
    assert seed.doc(CUSTOMERS_COLLECTION, "c1")["creditBalance"] == 2000
    assert seed.docs(SALE_PAYMENTS_COLLECTION)[0]["saleId"] == "CREDIT_BALANCE_c1"
    assert dao.commits == 1


@pytest.mark.asyncio
async def test_large_surplus_needs_confirmation(services, seed, dao):
    seed.customer("c1")
    seed.sale("s1", total=1000)

    with pytest.raises(SurplusConfirmationRequired) as exc_info:
        await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(partner_id="c1", amount=1500))

    assert exc_info.value.surplus == 500
    assert dao.commits == 0
    assert seed.docs(SALE_PAYMENTS_COLLECTION) == []


@pytest.mark.asyncio
async def test_small_surplus_becomes_credit_without_confirmation(services, seed):
    seed.customer("c1", credit_balance=100)
    seed.sale("s1", total=1000)

    plan = await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(partner_id="c1", amount=1005))

    assert plan.surplus == 5
    assert plan.credit_delta == 5
    assert seed.doc(CUSTOMERS_COLLECTION, "c1")["creditBalance"] == 105


@pytest.mark.asyncio
async def test_scenario_c_insufficient_credit(services, seed, dao):
    seed.customer("c1", credit_balance=1000)
    seed.sale("s1", total=5000)
    before = seed.doc(SALES_COLLECTION, "s1").copy()

    with pytest.raises(InsufficientCreditError):
        await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(
            partner_id="c1", amount=3000, method="Compte Avoir",
        ))

    assert dao.commits == 0
    assert seed.doc(SALES_COLLECTION, "s1") == before
    assert seed.doc(CUSTOMERS_COLLECTION, "c1")["creditBalance"] == 1000


@pytest.mark.asyncio
async def test_credit_funded_payment_debits_credit(services, seed):
    seed.customer("c1", credit_balance=1000)
    seed.sale("s1", total=800)

    plan = await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(
        partner_id="c1", amount=800, method="Compte Avoir",
    ))

    assert plan.credit_balance_after == 200
    assert seed.doc(CUSTOMERS_COLLECTION, "c1")["creditBalance"] == 200
    assert seed.doc(SALES_COLLECTION, "s1")["paymentStatus"] == "Payé"
    assert seed.docs(SALE_PAYMENTS_COLLECTION)[0]["method"] == "Compte Avoir"


@pytest.mark.asyncio
async def test_credit_funded_payment_cannot_exceed_debt(services, seed, dao):
    seed.customer("c1", credit_balance=1000)
    seed.sale("s1", total=600)

    with pytest.raises(OverpaymentError):
        await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(
            partner_id="c1", amount=900, method="Compte Avoir", confirm_surplus=True,
        ))
    assert dao.commits == 0


@pytest.mark.asyncio
async def test_unknown_partner_is_fatal(services, dao):
    with pytest.raises(PartnerNotFoundError):
        await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(partner_id="nobody", amount=10))
    assert dao.commits == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -50, None])
async def test_non_positive_amount_is_rejected(services, seed, amount):
    seed.customer("c1")
    with pytest.raises(InvalidAmountError):
        await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(partner_id="c1", amount=amount))


@pytest.mark.asyncio
async def test_stale_catalog_entries_are_skipped(services, seed):
    seed.customer("c1")
    seed.sale("s1", total=1000, paid=0)
    shown = await services.catalog.build(LedgerSide.SALES, "c1")
    shown.append(Debt(InvoiceDebt("gone"), DebtKind.INVOICE, 400, datetime(2023, 1, 1), "FV-gone"))
    # Someone else settled part of s1 since the catalog was shown
    seed.dao.collections[SALES_COLLECTION]["s1"]["paidAmount"] = 700

    plan = await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(
        partner_id="c1", amount=300, catalog=shown,
    ))

    assert plan.skipped_debts == ["gone"]
    assert [(p.debt_ref, p.amount) for p in plan.payments] == [(InvoiceDebt("s1"), 300)]
    assert seed.doc(SALES_COLLECTION, "s1")["paidAmount"] == 1000
    assert seed.doc(SALES_COLLECTION, "s1")["paymentStatus"] == "Payé"


@pytest.mark.asyncio
async def test_commit_survives_contention_retries(services, seed, dao):
    dao.simulated_conflicts = 2
    seed.customer("c1")
    seed.sale("s1", total=1000)

    await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(partner_id="c1", amount=400))

    assert dao.attempts == 3
    assert dao.commits == 1
    assert len(seed.docs(SALE_PAYMENTS_COLLECTION)) == 1
    assert seed.doc(SALES_COLLECTION, "s1")["paidAmount"] == 400


@pytest.mark.asyncio
async def test_purchase_side_uses_supplier_collections(services, seed):
    seed.supplier("f1")
    seed.purchase("a1", total=700, paid=100)

    await services.allocator.record_payment(LedgerSide.PURCHASES, PaymentRequest(partner_id="f1", amount=250))

    assert seed.doc("purchases", "a1")["paidAmount"] == 350
    assert seed.doc("purchases", "a1")["paymentStatus"] == "Partiel"
    assert seed.docs("purchasePayments")[0]["purchaseId"] == "a1"


def test_payment_amounts_add_up_exactly():
    partner = Partner(id="c1", opening_balance=333.33)
    invoices = [
        Invoice(id=f"s{i}", date=datetime(2024, 1, i + 1), grand_total=total, paid_amount=0)
        for i, total in enumerate([120.45, 99.99, 250.10, 17.03])
    ]

    for amount in [10.01, 333.33, 453.78, 800.9, 820.9, 830.0]:
        plan = _plan(partner, invoices, PaymentRequest(partner_id="c1", amount=amount, confirm_surplus=True))
        assert round(sum(p.amount for p in plan.payments), 2) == amount


def test_dust_below_tolerance_goes_to_last_payment():
    partner = Partner(id="c1")
    invoices = [Invoice(id="s1", date=datetime(2024, 1, 1), grand_total=100, paid_amount=0)]

    plan = _plan(partner, invoices, PaymentRequest(partner_id="c1", amount=100.08))

    assert [p.amount for p in plan.payments] == [100.08]
    assert plan.surplus == 0
    assert plan.invoice_updates[0].paid_amount == 100.08


def test_settling_is_monotonic_and_bounded():
    partner = Partner(id="c1")
    invoices = [
        Invoice(id="s1", date=datetime(2024, 1, 1), grand_total=500, paid_amount=120),
        Invoice(id="s2", date=datetime(2024, 1, 2), grand_total=80.5, paid_amount=0),
        Invoice(id="s3", date=datetime(2024, 1, 3), grand_total=1000, paid_amount=999),
    ]
    totals = {i.id: i.grand_total for i in invoices}

    plan = _plan(partner, invoices, PaymentRequest(partner_id="c1", amount=470.55))

    for update in plan.invoice_updates:
        assert update.paid_amount >= update.previous_paid_amount
        assert update.paid_amount <= totals[update.invoice_id] + SETTLEMENT_EPSILON


def test_notes_use_caller_text_and_flag_redistributed_debts():
    partner = Partner(id="c1")
    invoices = [
        Invoice(id="s1", reference_number="FV-1", date=datetime(2024, 1, 1), grand_total=100),
        Invoice(id="s2", reference_number="FV-2", date=datetime(2024, 1, 2), grand_total=100),
    ]

    plan = _plan(partner, invoices, PaymentRequest(
        partner_id="c1", amount=200, selected=InvoiceDebt("s2"), notes="Chèque 123",
    ))

    assert [p.notes for p in plan.payments] == ["Chèque 123", "Chèque 123 (Répartition auto: FV-1)"]


@pytest.mark.parametrize("method, credit_after", [("Espèces", 0), ("Compte Avoir", 9.95)])
def test_payment_within_tolerance_settles_first_open_debt(method, credit_after):
    partner = Partner(id="c1", credit_balance=10 if method == "Compte Avoir" else 0)
    invoices = [Invoice(id="s1", date=datetime(2024, 1, 1), grand_total=1000, paid_amount=0)]

    plan = _plan(partner, invoices, PaymentRequest(partner_id="c1", amount=0.05, method=method))

    assert [(p.debt_ref, p.amount) for p in plan.payments] == [(InvoiceDebt("s1"), 0.05)]
    assert plan.surplus == 0
    assert plan.invoice_updates[0].paid_amount == 0.05
    assert plan.credit_balance_after == credit_after


def test_payment_within_tolerance_without_debts_becomes_credit():
    plan = _plan(Partner(id="c1"), [], PaymentRequest(partner_id="c1", amount=0.05))

    assert [(p.debt_ref, p.amount) for p in plan.payments] == [(CreditAccountDebt("c1"), 0.05)]
    assert plan.credit_balance_after == 0.05


@pytest.mark.parametrize("operator, number", [(None, "0712"), ("MTN", None), ("", "")])
def test_mobile_money_needs_operator_and_number(operator, number):
    invoices = [Invoice(id="s1", date=datetime(2024, 1, 1), grand_total=100)]

    with pytest.raises(MissingMobileMoneyDetailsError):
        _plan(Partner(id="c1"), invoices, PaymentRequest(
            partner_id="c1", amount=50, method="Mobile Money", momo_operator=operator, momo_number=number,
        ))


@pytest.mark.asyncio
async def test_mobile_money_details_are_stored_on_every_payment(services, seed):
    seed.customer("c1")
    seed.sale("s1", total=100, date="2024-01-01T00:00:00.000Z")
    seed.sale("s2", total=100, date="2024-01-02T00:00:00.000Z")

    await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(
        partner_id="c1", amount=150, method="Mobile Money", momo_operator="MTN", momo_number="0712345678",
        date=PAY_DATE,
    ))

    stored = seed.docs(SALE_PAYMENTS_COLLECTION)
    assert len(stored) == 2
    assert {(d["momoOperator"], d["momoNumber"]) for d in stored} == {("MTN", "0712345678")}


@pytest.mark.asyncio
async def test_cash_payments_carry_no_mobile_money_fields(services, seed):
    seed.customer("c1")
    seed.sale("s1", total=100)

    await services.allocator.record_payment(LedgerSide.SALES, PaymentRequest(
        partner_id="c1", amount=100, date=PAY_DATE,
    ))

    assert "momoOperator" not in seed.docs(SALE_PAYMENTS_COLLECTION)[0]


@pytest.mark.asyncio
async def test_record_payment_leaves_request_untouched(services, seed):
    seed.customer("c1")
    seed.sale("s1", total=100)
    request = PaymentRequest(partner_id="c1", amount=40)

    plan = await services.allocator.record_payment(LedgerSide.SALES, request)

    assert request.date is None
    assert plan.payments[0].date is not None
