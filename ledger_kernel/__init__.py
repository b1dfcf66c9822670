"""
Ledger Kernel

A multi-tenant double-entry general ledger with:
- Idempotent, atomic posting of balanced journal entries
- Fiscal calendar with period close discipline
- Strictly increasing, never reused document numbering
- Reversal by compensating entries
- On-demand integrity auditing
"""

__version__ = "0.1.0"
