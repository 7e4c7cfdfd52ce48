"""
Job runners for the directory feature.
"""

from .sitemap_job import run_sitemap_generation, write_sitemap

__all__ = ["run_sitemap_generation", "write_sitemap"]
