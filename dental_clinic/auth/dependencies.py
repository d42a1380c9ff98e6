"""
FastAPI dependencies for authentication and authorization.
"""
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
import logging

from .models import UserRole
from .schemas import CurrentUser
from .security import verify_token
from .exceptions import InvalidTokenException, PermissionDeniedException
from ..core.permissions import Permission, has_permission

# Set up logging
logger = logging.getLogger(__name__)

# Tokens come from the external identity provider
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")

def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """
    Get the caller identity from the bearer token.
    
    Args:
        token: JWT token from Authorization header
        
    Returns:
        CurrentUser: Caller id and role
        
    Raises:
        InvalidTokenException: If token is invalid or lacks identity claims
    """
    payload = verify_token(token)
    if not payload:
        raise InvalidTokenException("Invalid or expired token")
    
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        raise InvalidTokenException("Invalid token payload")
    
    try:
        return CurrentUser(id=str(user_id), role=UserRole(role))
    except ValueError:
        raise InvalidTokenException(f"Unknown role '{role}'")

def require_permission(permission: Permission):
    """
    Dependency factory to require a capability.
    
    Args:
        permission: Capability the caller's role must hold
        
    Returns:
        Function that checks the caller's role against the capability set
    """
    def permission_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not has_permission(current_user.role, permission):
            logger.warning(
                f"User {current_user.id} with role {current_user.role.value} denied {permission.value}"
            )
            raise PermissionDeniedException(
                f"Access denied. Role '{current_user.role.value}' cannot {permission.value}"
            )
        return current_user
    return permission_checker
