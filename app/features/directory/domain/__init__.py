"""
Domain subpackage for the directory feature.
"""

from .errors import AuthRequiredError, FetchError
from .models import Identity, Listing, PendingVote, VoteOutcome, VoteReceipt
from .ports import IdentityProvider, ListingStore, VoteStore

__all__ = [
    "AuthRequiredError",
    "FetchError",
    "Identity",
    "IdentityProvider",
    "Listing",
    "ListingStore",
    "PendingVote",
    "VoteOutcome",
    "VoteReceipt",
    "VoteStore",
]
