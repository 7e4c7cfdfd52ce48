"""
Middleware components for request processing.

- Request context (request ID bound into every log line)
- CORS for the static site
"""

from app.middleware.cors import CORSMiddleware
from app.middleware.request_context import RequestContextMiddleware

__all__ = [
    "RequestContextMiddleware",
    "CORSMiddleware",
]
