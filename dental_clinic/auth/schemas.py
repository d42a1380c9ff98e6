"""
Identity Schemas - Pydantic models describing the authenticated caller.
"""
from pydantic import BaseModel
from .models import UserRole

class CurrentUser(BaseModel):
    """
    Caller identity extracted from the bearer token
    
    Fields:
    - id: Opaque user id issued by the identity provider
    - role: Caller role
    """
    id: str
    role: UserRole
