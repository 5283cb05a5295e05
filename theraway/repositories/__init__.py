"""
Persistence adapters.

Services depend on these helpers rather than opening SQLAlchemy sessions for
plain reads and creates. Multi-row writes that must be atomic with the ledger
go through services.transactions.TransactionCoordinator instead.
"""
