"""Repository package for database operations."""

from pos_ledger.repositories.firestore_dao import FirestoreDAO, FirestoreTransaction
from pos_ledger.repositories.partner_repository import PartnerRepository
from pos_ledger.repositories.invoice_repository import InvoiceRepository
from pos_ledger.repositories.payment_repository import PaymentRepository
from pos_ledger.repositories.credit_note_repository import CreditNoteRepository

__all__ = [
    "FirestoreDAO",
    "FirestoreTransaction",
    "PartnerRepository",
    "InvoiceRepository",
    "PaymentRepository",
    "CreditNoteRepository"
]
