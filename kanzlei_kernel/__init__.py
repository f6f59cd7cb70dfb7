"""
Kanzlei Kernel - financial integrity core

A hash-chained, append-only ledger for a legal practice with:
- Fiscal signatures sealing every cash payment and receipt void
- Cash receipts (Kassenbelege) linked to their sealing signature
- A tamper-evident journal of every accounting-export run
- Per-workspace serialization of chain appends
"""

__version__ = "0.1.0"
