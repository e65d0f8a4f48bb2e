from dataclasses import dataclass
from typing import Optional

from errors import UnauthenticatedError


@dataclass(frozen=True)
class Identity:
    """The authenticated user on whose behalf an operation runs."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def name(self) -> str:
        return self.display_name or self.email or self.uid


def require(identity: Optional[Identity]) -> Identity:
    """Return ``identity`` or raise when there is no active session."""
    if identity is None or not identity.uid:
        raise UnauthenticatedError()
    return identity
