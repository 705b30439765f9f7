"""
Ledger Kernel

A multi-tenant double-entry posting engine with:
- Balanced, atomic transaction posting
- Per-tenant document numbering
- Cached account balances with hierarchical roll-up
- Void by compensating reversal (history is never rewritten)
"""

__version__ = "0.1.0"
