"""
Pharma Kernel - multi-site stock ledger

An append-only inventory ledger with:
- Signed quantity movements (never a mutable counter)
- Stock derived by projection over the ledger
- Safety-stock enforcement at write time
- Atomic multi-leg operations (transfer, receipt, write-off)
- Reproducible running balances (kardex)
"""

__version__ = "0.1.0"
