"""Leastload enumerations."""

from enum import Enum


class ExpiryPolicy(str, Enum):
    """Which lease a fired expiry check is allowed to remove."""

    # First expired lease found, whichever check fired (historical behavior)
    ANY_EXPIRED = "any_expired"
    # Only the lease that scheduled the check
    OWN_LEASE = "own_lease"
