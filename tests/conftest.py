"""Shared fixtures: an in-memory ledger store and the wired services."""

import pytest

from pos_ledger.config import (
    CUSTOMERS_COLLECTION, PURCHASES_COLLECTION, PURCHASE_PAYMENTS_COLLECTION, SALES_COLLECTION,
    SALE_PAYMENTS_COLLECTION, SUPPLIERS_COLLECTION,
)
from pos_ledger.main import build_services
from pos_ledger.mocks.in_memory_dao import InMemoryDAO
from pos_ledger.models.schemas import derive_payment_status


class LedgerSeeder:
    """Writes documents shaped like the web client's into the in-memory store."""

    def __init__(self, dao: InMemoryDAO):
        self.dao = dao

    def customer(self, customer_id="c1", opening_balance=0.0, opening_date=None, credit_balance=0.0, **extra):
        doc = {
            "id": customer_id,
            "name": f"Client {customer_id}",
            "openingBalance": opening_balance,
            "openingBalanceDate": opening_date,
            "creditBalance": credit_balance,
            **extra,
        }
        self.dao.seed(CUSTOMERS_COLLECTION, [doc])
        return doc

    def supplier(self, supplier_id="f1", opening_balance=0.0, opening_date=None, credit_balance=0.0):
        doc = {
            "id": supplier_id,
            "name": f"Fournisseur {supplier_id}",
            "openingBalance": opening_balance,
            "openingBalanceDate": opening_date,
            "creditBalance": credit_balance,
        }
        self.dao.seed(SUPPLIERS_COLLECTION, [doc])
        return doc

    def sale(self, sale_id, customer_id="c1", total=0.0, paid=0.0, date="2024-01-01T00:00:00.000Z"):
        doc = {
            "id": sale_id,
            "referenceNumber": f"FV-{sale_id}",
            "customerId": customer_id,
            "date": date,
            "grandTotal": total,
            "paidAmount": paid,
            "paymentStatus": derive_payment_status(paid, total).value,
        }
        self.dao.seed(SALES_COLLECTION, [doc])
        return doc

    def purchase(self, purchase_id, supplier_id="f1", total=0.0, paid=0.0, date="2024-01-01T00:00:00.000Z"):
        doc = {
            "id": purchase_id,
            "referenceNumber": f"FA-{purchase_id}",
            "supplierId": supplier_id,
            "date": date,
            "grandTotal": total,
            "paidAmount": paid,
            "paymentStatus": derive_payment_status(paid, total).value,
        }
        self.dao.seed(PURCHASES_COLLECTION, [doc])
        return doc

    def sale_payment(self, payment_id, debt_id, amount, method="Espèces", date="2024-02-01T00:00:00.000Z",
                     partner_id="c1", **extra):
        doc = {
            "id": payment_id,
            "saleId": debt_id,
            "partnerId": partner_id,
            "amount": amount,
            "method": method,
            "date": date,
            "note": "Paiement",
            "createdByUserId": "u0",
            **extra,
        }
        self.dao.seed(SALE_PAYMENTS_COLLECTION, [doc])
        return doc

    def purchase_payment(self, payment_id, debt_id, amount, method="Espèces", date="2024-02-01T00:00:00.000Z"):
        doc = {
            "id": payment_id,
            "purchaseId": debt_id,
            "amount": amount,
            "method": method,
            "date": date,
        }
        self.dao.seed(PURCHASE_PAYMENTS_COLLECTION, [doc])
        return doc

    def doc(self, collection, document_id):
        return self.dao.collections.get(collection, {}).get(document_id)

    def docs(self, collection):
        return list(self.dao.collections.get(collection, {}).values())


@pytest.fixture
def dao():
    """Empty in-memory store."""
    return InMemoryDAO()


@pytest.fixture
def seed(dao):
    return LedgerSeeder(dao)


@pytest.fixture
def services(dao):
    return build_services(dao)
