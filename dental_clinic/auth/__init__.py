"""
Identity boundary for the dental clinic system.

This module does not issue or manage accounts. It consumes a bearer token
produced by the clinic's identity provider and exposes:
- The caller identity (id and role)
- Role-based capability checks for appointment and ledger endpoints
"""
