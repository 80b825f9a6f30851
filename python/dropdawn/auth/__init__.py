"""Authentication module.

This module provides:
- Token verification (Supabase JWKS verifier)
- Auth middleware for FastAPI
- Request state with viewer identity

Note: Test-only verifiers are in tests/conftest.py
"""

from dropdawn.auth.middleware import AuthMiddleware, Viewer, get_optional_viewer, get_viewer
from dropdawn.auth.verifier import SupabaseJwksVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "Viewer",
    "get_optional_viewer",
    "get_viewer",
    "SupabaseJwksVerifier",
    "TokenVerifier",
]
