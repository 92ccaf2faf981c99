"""In-memory stand-ins for external services."""

from pos_ledger.mocks.in_memory_dao import InMemoryDAO, InMemoryTransaction

__all__ = ["InMemoryDAO", "InMemoryTransaction"]
