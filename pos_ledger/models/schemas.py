"""
Data models for the ledger collections.

Documents are written by the web client with camelCase field names and ISO
date strings. Each model converts from and to that stored shape so the
engine can share collections with the rest of the application.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List, Union
from dataclasses import dataclass, field
import enum

from pos_ledger.config import (
    CUSTOMERS_COLLECTION, SUPPLIERS_COLLECTION,
    SALES_COLLECTION, PURCHASES_COLLECTION,
    SALE_PAYMENTS_COLLECTION, PURCHASE_PAYMENTS_COLLECTION,
    DELETED_SALE_PAYMENTS_COLLECTION, DELETED_PURCHASE_PAYMENTS_COLLECTION,
    OPENING_BALANCE_PREFIX, CREDIT_BALANCE_PREFIX,
    SETTLEMENT_EPSILON, DEFAULT_PAYMENT_METHOD,
)
from pos_ledger.utils.parsing import parse_date, parse_amount, format_date, round_amount


# Enums
class PaymentStatus(str, enum.Enum):
    PENDING = "En attente"
    PARTIAL = "Partiel"
    PAID = "Payé"


class DebtKind(str, enum.Enum):
    OPENING = "opening"
    INVOICE = "invoice"


class MovementKind(str, enum.Enum):
    OPENING_BALANCE = "opening_balance"
    OPENING_PAYMENT = "opening_payment"
    INVOICE = "invoice"
    INVOICE_PAYMENT = "invoice_payment"
    DEPOSIT = "deposit"  # paidAmount recorded on the invoice without a payment document
    CREDIT_DEPOSIT = "credit_deposit"
    CREDIT_USAGE = "credit_usage"


_SIDE_LAYOUT = {
    "sales": {
        "partner_collection": CUSTOMERS_COLLECTION,
        "invoice_collection": SALES_COLLECTION,
        "payment_collection": SALE_PAYMENTS_COLLECTION,
        "deleted_payment_collection": DELETED_SALE_PAYMENTS_COLLECTION,
        "invoice_partner_field": "customerId",
        "payment_debt_field": "saleId",
    },
    "purchases": {
        "partner_collection": SUPPLIERS_COLLECTION,
        "invoice_collection": PURCHASES_COLLECTION,
        "payment_collection": PURCHASE_PAYMENTS_COLLECTION,
        "deleted_payment_collection": DELETED_PURCHASE_PAYMENTS_COLLECTION,
        "invoice_partner_field": "supplierId",
        "payment_debt_field": "purchaseId",
    },
}


class LedgerSide(str, enum.Enum):
    """Which half of the books an operation works on."""
    SALES = "sales"
    PURCHASES = "purchases"

    @property
    def partner_collection(self) -> str:
        return _SIDE_LAYOUT[self.value]["partner_collection"]

    @property
    def invoice_collection(self) -> str:
        return _SIDE_LAYOUT[self.value]["invoice_collection"]

    @property
    def payment_collection(self) -> str:
        return _SIDE_LAYOUT[self.value]["payment_collection"]

    @property
    def deleted_payment_collection(self) -> str:
        return _SIDE_LAYOUT[self.value]["deleted_payment_collection"]

    @property
    def invoice_partner_field(self) -> str:
        return _SIDE_LAYOUT[self.value]["invoice_partner_field"]

    @property
    def payment_debt_field(self) -> str:
        return _SIDE_LAYOUT[self.value]["payment_debt_field"]


def derive_payment_status(paid_amount: float, grand_total: float) -> PaymentStatus:
    """Payment status as a pure function of what was paid against what is due."""
    if round_amount(grand_total - paid_amount) <= SETTLEMENT_EPSILON:
        return PaymentStatus.PAID
    if round_amount(paid_amount) > SETTLEMENT_EPSILON:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


# Debt references
@dataclass(frozen=True)
class InvoiceDebt:
    invoice_id: str

    def to_storage_id(self) -> str:
        return self.invoice_id


@dataclass(frozen=True)
class OpeningBalanceDebt:
    partner_id: str

    def to_storage_id(self) -> str:
        return f"{OPENING_BALANCE_PREFIX}{self.partner_id}"


@dataclass(frozen=True)
class CreditAccountDebt:
    partner_id: str

    def to_storage_id(self) -> str:
        return f"{CREDIT_BALANCE_PREFIX}{self.partner_id}"


DebtRef = Union[InvoiceDebt, OpeningBalanceDebt, CreditAccountDebt]


def parse_debt_ref(storage_id: str) -> DebtRef:
    """Turn the id stored on a payment document back into a DebtRef."""
    if not storage_id:
        raise ValueError("Empty debt reference")
    if storage_id.startswith(OPENING_BALANCE_PREFIX):
        return OpeningBalanceDebt(storage_id[len(OPENING_BALANCE_PREFIX):])
    if storage_id.startswith(CREDIT_BALANCE_PREFIX):
        return CreditAccountDebt(storage_id[len(CREDIT_BALANCE_PREFIX):])
    return InvoiceDebt(storage_id)


def _amount(value: Any) -> float:
    parsed = parse_amount(value)
    return parsed if parsed is not None else 0.0


# Stored records
@dataclass
class Partner:
    """A customer or a supplier."""
    id: str
    name: str = ""
    business_name: Optional[str] = None
    opening_balance: float = 0.0
    opening_balance_date: Optional[datetime] = None
    is_credit_limited: bool = False
    credit_limit: Optional[float] = None
    credit_balance: float = 0.0

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Partner":
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            business_name=doc.get("businessName"),
            opening_balance=_amount(doc.get("openingBalance")),
            opening_balance_date=parse_date(doc.get("openingBalanceDate")),
            is_credit_limited=bool(doc.get("isCreditLimited", False)),
            credit_limit=parse_amount(doc.get("creditLimit")),
            credit_balance=_amount(doc.get("creditBalance")),
        )


@dataclass
class Invoice:
    """A sale or a purchase, seen only through its settlement fields."""
    id: str
    partner_id: str = ""
    reference_number: str = ""
    date: Optional[datetime] = None
    grand_total: float = 0.0
    paid_amount: float = 0.0
    payment_status: PaymentStatus = PaymentStatus.PENDING

    @property
    def remaining(self) -> float:
        return self.grand_total - self.paid_amount

    @classmethod
    def from_document(cls, side: LedgerSide, doc: Dict[str, Any]) -> "Invoice":
        grand_total = _amount(doc.get("grandTotal"))
        paid_amount = _amount(doc.get("paidAmount"))
        status = doc.get("paymentStatus")
        try:
            payment_status = PaymentStatus(status)
        except ValueError:
            payment_status = derive_payment_status(paid_amount, grand_total)
        return cls(
            id=doc["id"],
            partner_id=doc.get(side.invoice_partner_field, ""),
            reference_number=doc.get("referenceNumber", ""),
            date=parse_date(doc.get("date")),
            grand_total=grand_total,
            paid_amount=paid_amount,
            payment_status=payment_status,
        )


@dataclass
class Payment:
    """One settlement movement against a real or pseudo debt."""
    id: str
    debt_ref: DebtRef
    amount: float
    date: Optional[datetime] = None
    method: str = DEFAULT_PAYMENT_METHOD
    notes: str = ""
    created_by: Optional[str] = None
    partner_id: Optional[str] = None
    momo_operator: Optional[str] = None
    momo_number: Optional[str] = None

    @classmethod
    def from_document(cls, side: LedgerSide, doc: Dict[str, Any]) -> "Payment":
        return cls(
            id=doc["id"],
            debt_ref=parse_debt_ref(doc.get(side.payment_debt_field, "")),
            amount=_amount(doc.get("amount")),
            date=parse_date(doc.get("date")),
            method=doc.get("method", DEFAULT_PAYMENT_METHOD),
            notes=doc.get("notes") or doc.get("note") or "",
            created_by=doc.get("createdByUserId"),
            partner_id=doc.get("partnerId"),
            momo_operator=doc.get("momoOperator"),
            momo_number=doc.get("momoNumber"),
        )

    def to_document(self, side: LedgerSide) -> Dict[str, Any]:
        data = {
            "id": self.id,
            side.payment_debt_field: self.debt_ref.to_storage_id(),
            "partnerId": self.partner_id,
            "date": format_date(self.date),
            "amount": self.amount,
            "method": self.method,
            "notes": self.notes,
            "createdByUserId": self.created_by,
        }
        if self.momo_operator or self.momo_number:
            data["momoOperator"] = self.momo_operator
            data["momoNumber"] = self.momo_number
        return data


@dataclass
class DeletedPayment:
    """Audit snapshot written whenever a payment is removed."""
    payment: Payment
    deleted_by: Optional[str]
    delete_reason: str
    deleted_at: datetime = field(default_factory=datetime.utcnow)

    def to_document(self, side: LedgerSide) -> Dict[str, Any]:
        data = self.payment.to_document(side)
        data.update({
            "originalPaymentId": self.payment.id,
            "deletedAt": format_date(self.deleted_at),
            "deletedBy": self.deleted_by,
            "deleteReason": self.delete_reason,
        })
        return data


@dataclass
class CreditNote:
    id: str
    reference_number: str
    customer_id: str
    amount: float
    reason: str
    payment_id: Optional[str] = None
    date: Optional[datetime] = None
    created_by: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "CreditNote":
        return cls(
            id=doc["id"],
            reference_number=doc.get("referenceNumber", ""),
            customer_id=doc.get("customerId", ""),
            amount=_amount(doc.get("amount")),
            reason=doc.get("reason", ""),
            payment_id=doc.get("paymentId"),
            date=parse_date(doc.get("date")),
            created_by=doc.get("createdByUserId"),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "referenceNumber": self.reference_number,
            "customerId": self.customer_id,
            "amount": self.amount,
            "reason": self.reason,
            "paymentId": self.payment_id,
            "date": format_date(self.date),
            "items": [],
            "createdByUserId": self.created_by,
        }


# Derived views (never persisted)
@dataclass
class Debt:
    """An outstanding obligation in a partner's debt catalog."""
    debt_ref: DebtRef
    kind: DebtKind
    remaining: float
    date: Optional[datetime]
    ref_label: str

    @property
    def debt_id(self) -> str:
        return self.debt_ref.to_storage_id()


@dataclass
class AccountMovement:
    date: Optional[datetime]
    ref: str
    description: str
    debit: float
    credit: float
    kind: MovementKind
    balance: float = 0.0


@dataclass
class Statement:
    partner: Partner
    side: LedgerSide
    movements: List[AccountMovement] = field(default_factory=list)
    total_debit: float = 0.0
    total_credit: float = 0.0
    balance: float = 0.0
