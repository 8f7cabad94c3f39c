"""
Transfer Kernel

Persistence, domain types and audit trail for plot-ownership transfer
cases:
- Guard-gated stage transitions with a single authoritative stage pointer
- Append-only audit trail with idempotent request-metadata backfill
- Immutable stage catalog and finalized deeds
"""

__version__ = "0.1.0"
