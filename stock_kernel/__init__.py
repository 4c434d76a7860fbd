"""
Stock Kernel - the ledger engine of the inventory app.

An append-only stock ledger with:
- One immutable transaction per quantity change
- Atomic units of work with bounded retry on transient storage errors
- Lazy, single-flight schema initialization and legacy migration
- Read-side analytics derived from the ledger (value, revenue, profit)
- Low-stock signalling to an external notification collaborator
"""

__version__ = "0.1.0"
