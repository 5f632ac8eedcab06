"""
fuel_kernel -- Core types, persistence and logging for fuel ledger reconciliation.

Holds the immutable transaction model, the typed exception hierarchy, the
structured logging setup and the SQLAlchemy persistence layer. Engines and
services build on top of it; nothing in the kernel imports from them.
"""
