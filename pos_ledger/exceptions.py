"""
Domain exceptions raised by the reconciliation engine.

Every error carries a user-facing message, a stable error code and the
details the presentation layer needs to render it. All of them abort the
current transaction before any write is committed.
"""

from typing import Any, Dict


class LedgerError(Exception):
    """Base ledger exception."""

    def __init__(self, message: str, error_code: str, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class PartnerNotFoundError(LedgerError):
    """Raised when the customer or supplier document does not exist."""

    def __init__(self, partner_id: str, collection: str = None):
        super().__init__(
            message=f"Partenaire introuvable: {partner_id}",
            error_code="ERR_PARTNER_NOT_FOUND",
            details={"partner_id": partner_id, "collection": collection}
        )


class PaymentNotFoundError(LedgerError):
    """Raised when the payment to reverse or edit does not exist."""

    def __init__(self, payment_id: str):
        super().__init__(
            message=f"Paiement introuvable: {payment_id}",
            error_code="ERR_PAYMENT_NOT_FOUND",
            details={"payment_id": payment_id}
        )


class CreditNoteNotFoundError(LedgerError):
    """Raised when the credit note to delete does not exist."""

    def __init__(self, credit_note_id: str):
        super().__init__(
            message=f"Note de crédit introuvable: {credit_note_id}",
            error_code="ERR_CREDIT_NOTE_NOT_FOUND",
            details={"credit_note_id": credit_note_id}
        )


class InsufficientCreditError(LedgerError):
    """Raised when a debit would drive a credit balance negative."""

    def __init__(self, requested: float, available: float):
        super().__init__(
            message=f"Solde avoir insuffisant: {available:g} disponible, {requested:g} demandé.",
            error_code="ERR_INSUFFICIENT_CREDIT",
            details={"requested": requested, "available": available}
        )


class CreditAlreadyUsedError(InsufficientCreditError):
    """Raised when removing credit that has since been spent."""

    def __init__(self, requested: float, available: float):
        super().__init__(requested, available)
        self.message = (
            f"Impossible de supprimer: le crédit a déjà été utilisé "
            f"(solde actuel: {available:g}, requis: {requested:g})."
        )
        self.error_code = "ERR_CREDIT_ALREADY_USED"
        self.args = (self.message,)


class OverpaymentError(LedgerError):
    """Raised when a payment would settle more than what is owed."""

    def __init__(self, amount: float, outstanding: float, debt_id: str = None):
        super().__init__(
            message=f"Le paiement ({amount:g}) dépasse le solde dû ({outstanding:g}).",
            error_code="ERR_OVERPAYMENT",
            details={"amount": amount, "outstanding": outstanding, "debt_id": debt_id}
        )


class SurplusConfirmationRequired(LedgerError):
    """Raised when an overpayment must be confirmed before becoming credit."""

    def __init__(self, amount: float, total_debt: float):
        self.surplus = amount - total_debt
        super().__init__(
            message=(
                f"Le montant saisi ({amount:g}) est supérieur à la dette totale ({total_debt:g}). "
                f"Confirmez pour créer un avoir de {self.surplus:g}."
            ),
            error_code="ERR_SURPLUS_CONFIRMATION",
            details={"amount": amount, "total_debt": total_debt, "surplus": self.surplus}
        )


class MissingDeleteReasonError(LedgerError):
    """Raised when a payment deletion has no audit reason."""

    def __init__(self, payment_id: str):
        super().__init__(
            message="Un motif de suppression est obligatoire.",
            error_code="ERR_DELETE_REASON_REQUIRED",
            details={"payment_id": payment_id}
        )


class InvalidAmountError(LedgerError):
    """Raised for zero, negative or unparseable amounts."""

    def __init__(self, amount: Any):
        super().__init__(
            message=f"Montant invalide: {amount}",
            error_code="ERR_INVALID_AMOUNT",
            details={"amount": amount}
        )


class MissingMobileMoneyDetailsError(LedgerError):
    """Raised when a Mobile Money payment has no operator or transaction number."""

    def __init__(self, operator: str = None, number: str = None):
        super().__init__(
            message="Veuillez renseigner l'opérateur et le numéro.",
            error_code="ERR_MOBILE_MONEY_DETAILS",
            details={"momo_operator": operator, "momo_number": number}
        )


class CreditNotePaymentError(LedgerError):
    """Raised when a credit note's payment is removed outside the credit note."""

    def __init__(self, payment_id: str):
        super().__init__(
            message=(
                "Ce paiement provient d'une note de crédit. "
                "Supprimez la note de crédit pour l'annuler."
            ),
            error_code="ERR_CREDIT_NOTE_PAYMENT",
            details={"payment_id": payment_id}
        )


class UnsupportedPaymentEditError(LedgerError):
    """Raised when an edit would need credit balance changes."""

    def __init__(self, payment_id: str, reason: str):
        super().__init__(
            message=(
                "Ce paiement touche le compte avoir et ne peut pas être modifié. "
                "Supprimez-le puis enregistrez un nouveau règlement."
            ),
            error_code="ERR_UNSUPPORTED_EDIT",
            details={"payment_id": payment_id, "reason": reason}
        )


class ReadAfterWriteError(LedgerError):
    """Raised when a transaction reads after it has staged a write."""

    def __init__(self, collection: str, document_id: str = None):
        super().__init__(
            message="Les lectures doivent précéder les écritures dans une transaction.",
            error_code="ERR_READ_AFTER_WRITE",
            details={"collection": collection, "document_id": document_id}
        )


class TransactionFailedError(LedgerError):
    """Raised when the store gives up on a transaction."""

    def __init__(self, operation: str, cause: Exception = None):
        super().__init__(
            message=f"Échec de l'opération '{operation}', aucune modification enregistrée.",
            error_code="ERR_TRANSACTION_FAILED",
            details={"operation": operation, "cause": str(cause) if cause else None}
        )
