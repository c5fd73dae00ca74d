"""
Authentication context handed to every chat component.
"""

from dataclasses import dataclass
from typing import Optional

from ..exceptions import UnauthenticatedError
from ..schemas.user import UserProfile


@dataclass
class AuthSession:
    """The signed-in user of one chat surface, if any."""
    user: Optional[UserProfile] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    def require_user(self) -> UserProfile:
        if self.user is None:
            raise UnauthenticatedError("Sign in to continue")
        return self.user

    def sign_in(self, user: UserProfile) -> None:
        self.user = user

    def sign_out(self) -> None:
        self.user = None
