"""
Core permissions utilities for role-based access control.

Every endpoint asks for a single capability; the role to capability mapping
lives here and nowhere else.
"""
from enum import Enum
from typing import Dict, List, Set
from ..auth.models import UserRole, STAFF_ROLES

class Permission(str, Enum):
    """
    Permission types for role-based access control.
    """
    # Appointment permissions
    CREATE_APPOINTMENT = "create_appointment"
    UPDATE_APPOINTMENT = "update_appointment"
    DELETE_APPOINTMENT = "delete_appointment"
    READ_APPOINTMENTS = "read_appointments"
    
    # Ledger permissions
    RECORD_TRANSACTION = "record_transaction"
    VIEW_FINANCIALS = "view_financials"


_STAFF_PERMISSIONS: List[Permission] = [
    Permission.CREATE_APPOINTMENT,
    Permission.UPDATE_APPOINTMENT,
    Permission.DELETE_APPOINTMENT,
    Permission.READ_APPOINTMENTS,
    Permission.RECORD_TRANSACTION,
    Permission.VIEW_FINANCIALS,
]

# Role-based permission mapping
ROLE_PERMISSIONS: Dict[UserRole, List[Permission]] = {
    **{role: _STAFF_PERMISSIONS for role in STAFF_ROLES},
    UserRole.PATIENT: [
        Permission.READ_APPOINTMENTS,
    ],
}


def get_permissions_for_role(role: UserRole) -> Set[Permission]:
    """
    Get permissions for a specific role.
    
    Args:
        role: User role
        
    Returns:
        Set[Permission]: Set of permissions for the role
    """
    return set(ROLE_PERMISSIONS.get(role, []))


def has_permission(role: UserRole, permission: Permission) -> bool:
    """
    Check if a role has a specific permission.
    
    Args:
        role: User role
        permission: Permission to check
        
    Returns:
        bool: True if the role has the permission
    """
    return permission in get_permissions_for_role(role)
