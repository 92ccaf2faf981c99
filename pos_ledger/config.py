"""
Configuration constants for the ledger reconciliation engine.
"""

import os

# Firestore connection
FIRESTORE_PROJECT_ID = os.environ.get("FIRESTORE_PROJECT_ID")
FIRESTORE_DATABASE_ID = os.environ.get("FIRESTORE_DATABASE_ID", "(default)")

# Collection prefixes
TEST_COLLECTION_PREFIX = "dev_"
PROD_COLLECTION_PREFIX = ""
COLLECTION_PREFIX = os.environ.get("COLLECTION_PREFIX", PROD_COLLECTION_PREFIX)

# Optimistic retry budget for a single reconciliation transaction
TRANSACTION_MAX_ATTEMPTS = int(os.environ.get("TRANSACTION_MAX_ATTEMPTS", "5"))

# Firestore caps the number of values in an "in" filter
FIRESTORE_IN_QUERY_LIMIT = 30

# Collections
CUSTOMERS_COLLECTION = "customers"
SUPPLIERS_COLLECTION = "suppliers"
SALES_COLLECTION = "sales"
PURCHASES_COLLECTION = "purchases"
SALE_PAYMENTS_COLLECTION = "salePayments"
PURCHASE_PAYMENTS_COLLECTION = "purchasePayments"
DELETED_SALE_PAYMENTS_COLLECTION = "deleted_salePayments"
DELETED_PURCHASE_PAYMENTS_COLLECTION = "deleted_purchasePayments"
CREDIT_NOTES_COLLECTION = "creditNotes"

# Pseudo-debt id prefixes used in stored payment documents
OPENING_BALANCE_PREFIX = "OPENING_BALANCE_"
CREDIT_BALANCE_PREFIX = "CREDIT_BALANCE_"

# Amounts at or below this are treated as settled
SETTLEMENT_EPSILON = 0.1

# An overpayment larger than this must be confirmed before it becomes credit
SURPLUS_CONFIRMATION_TOLERANCE = 10.0

# Unexplained paidAmount above this gets an implicit deposit row on statements
DEPOSIT_DISCREPANCY_TOLERANCE = 1.0

# Payment methods with ledger meaning
CREDIT_ACCOUNT_METHOD = "Compte Avoir"
CREDIT_NOTE_METHOD = "Note de crédit"
MOBILE_MONEY_METHOD = "Mobile Money"
DEFAULT_PAYMENT_METHOD = "Espèces"

# Labels
DEFAULT_PAYMENT_NOTE = "Règlement global"
OPENING_BALANCE_LABEL = "SOLDE D'OUVERTURE"
CREDIT_NOTE_REFERENCE_PREFIX = "AVOIR-"
