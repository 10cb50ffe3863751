"""
Customer Records

Minimal owner record for accounts. The ledger never inspects a client
beyond its identity and display name.
"""

from dataclasses import dataclass, field
import uuid


@dataclass(eq=False)
class BankClient:
    """
    Account holder.

    Compared and hashed by identity: two clients sharing a name are still
    different owners in the bank directory.
    """
    first_name: str
    last_name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not self.first_name or not self.first_name.strip():
            raise ValueError("First name is required")
        if not self.last_name or not self.last_name.strip():
            raise ValueError("Last name is required")

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
