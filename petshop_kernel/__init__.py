"""
Petshop Kernel - daily till and ledger core

The failure-sensitive core of the pet-shop dashboard:
- One open cash register at a time, reconciled at close
- Append-only financial ledger with payment-method attribution
- Resumable appointment completion (ledger entry, then status change)
- Read-only dashboard aggregates
"""

__version__ = "0.1.0"
