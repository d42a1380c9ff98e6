"""
Dental clinic scheduling backend.

Appointment booking with per-practitioner conflict detection, 5-minute time
grid normalization, timezone conversion and a payment ledger.
"""
