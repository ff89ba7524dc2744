from dataclasses import dataclass

from civic_reporter.models import User, UserRole


@dataclass(frozen=True)
class Actor:
    """The authenticated identity performing an operation."""

    id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, role=UserRole(user.role))
