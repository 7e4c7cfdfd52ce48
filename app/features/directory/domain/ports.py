"""
Contracts the directory core depends on.

Repositories and the Supabase identity provider implement these; tests use
in-memory fakes.
"""

from typing import Any, Protocol

from .models import Identity


class ListingStore(Protocol):
    async def fetch_sites(self) -> list[dict[str, Any]]:
        """Return every row of the sites table."""
        ...


class VoteStore(Protocol):
    async def fetch_identifiers(self, site: str) -> list[str]:
        """Return the identifier of every vote row for ``site``."""
        ...

    async def insert_or_ignore(self, site: str, identifier: str, user_id: str) -> bool:
        """Insert a vote row; return False when the unique row already existed."""
        ...


class IdentityProvider(Protocol):
    async def get_current_user(self) -> Identity | None: ...

    async def begin_interactive_sign_in(self, provider: str, redirect_target: str | None) -> str:
        """Start an interactive sign-in and return the URL the user must visit."""
        ...

    async def sign_out(self) -> None: ...
