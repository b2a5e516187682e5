"""
Credential security package.

- hasher: bcrypt password hashing and verification.
- tokens: HS256 bearer token issuing and verification.

Neither module performs IO beyond CPU work; both are safe to construct at
import time of the service.
"""

from .hasher import CredentialHasher
from .tokens import TokenIssuer

__all__ = ["CredentialHasher", "TokenIssuer"]
