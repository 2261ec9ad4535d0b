"""Principal Entity

The authenticated caller of an operation. Produced by the auth layer and
passed explicitly into every operation that needs it.
"""

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Caller role"""

    USER = "user"  # Marketplace user; poster or doer depending on the task
    ADMIN = "admin"  # Resolves disputes, may release escrow
    SYSTEM = "system"  # Scheduler and other internal callers


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
