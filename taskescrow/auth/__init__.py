"""Authentication adapters"""

from .principal import (
    AdminDep,
    InternalTokenDep,
    PrincipalDep,
    get_principal,
    require_admin,
    verify_internal_token,
)

__all__ = [
    "get_principal",
    "require_admin",
    "verify_internal_token",
    "PrincipalDep",
    "AdminDep",
    "InternalTokenDep",
]
