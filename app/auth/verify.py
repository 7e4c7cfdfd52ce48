"""
verify.py
---------
Purpose:
    Supabase access-token verification using the project JWKS (ES256).

Notes:
    - Keys are fetched from Supabase and cached by PyJWKClient.
    - `decode_access_token` raises jwt exceptions; callers decide whether an
      invalid token means "anonymous" or an error.
    - `bearer_token` is the optional Authorization header; directory routes
      are open to anonymous visitors.
"""

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.config import settings

SUPABASE_AUDIENCE = "authenticated"

_jwk_client = PyJWKClient(settings.jwks_url())
_optional_security = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict:
    signing_key = _jwk_client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        audience=SUPABASE_AUDIENCE,
        options={"verify_exp": True},
    )


def bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_optional_security),
) -> str | None:
    """Raw bearer token if the caller sent one; anonymous callers get None."""
    return credentials.credentials if credentials else None
