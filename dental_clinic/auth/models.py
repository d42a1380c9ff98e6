"""
Identity enums shared across the application.
"""
import enum

class UserRole(str, enum.Enum):
    """Enum for caller roles supplied by the identity provider"""
    ADMIN = "admin"
    DENTIST = "dentist"
    RECEPTIONIST = "receptionist"
    PATIENT = "patient"

STAFF_ROLES = (UserRole.ADMIN, UserRole.DENTIST, UserRole.RECEPTIONIST)
