"""
Directory feature package.

Everything behind the UBGHub site directory lives here: domain models and
ports, the catalog / vote ledger / session gate services, the Postgres
repositories, the HTTP router and the sitemap job.
"""

# Re-export the primary building blocks for easy access.
from .domain.models import Identity, Listing, PendingVote, VoteOutcome, VoteReceipt  # noqa: F401
from .services.context import DirectoryContext  # noqa: F401
