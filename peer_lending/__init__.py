"""
Peer Lending Ledger

Tracks informal peer-to-peer loans: borrowers, principal, monthly interest
cycles, repayments and top-ups. All money math uses Decimal and every
state change is written to a hash-chained audit trail.
"""

__version__ = "1.0.0"
