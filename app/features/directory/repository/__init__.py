"""
Store adapters for the directory feature (Supabase Postgres).
"""

from .listing_repository import ListingRepository, listing_repository
from .vote_repository import VoteRepository, vote_repository

__all__ = ["ListingRepository", "VoteRepository", "listing_repository", "vote_repository"]
