"""POS ledger reconciliation engine.

Allocates partner payments across outstanding debts, keeps credit balances
consistent, reverses past payments and projects account statements over a
Firestore document store.
"""

__version__ = "0.1.0"
