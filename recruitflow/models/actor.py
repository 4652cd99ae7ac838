"""The acting principal attributed to every lifecycle operation."""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """
    Supplied by the authentication layer. The engine never checks credentials;
    it only records who did what. ``username`` may be empty when unknown.
    """
    username: str = ""
    ip: Optional[str] = None
