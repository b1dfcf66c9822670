"""Mutating ledger services.  Each flushes into the caller's transaction."""
