"""
Appointment scheduling: slot normalization, per-practitioner conflict
detection, booking CRUD and the cached payment summary.
"""
