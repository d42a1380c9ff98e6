"""
Payment ledger: the authoritative log of payments, refunds and adjustments.
"""
