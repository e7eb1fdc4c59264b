from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as seen by the signing core."""
    email: str
    is_privileged: bool = False
    name: Optional[str] = None

    def matches(self, email: Optional[str]) -> bool:
        return bool(email) and self.email.strip().lower() == email.strip().lower()
