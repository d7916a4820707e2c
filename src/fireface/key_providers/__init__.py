"""
Key fetcher implementations for retrieving verification key sets.

This package contains implementations of the KeyFetcher protocol.
"""

from .jwks import JWKSFetcher

__all__ = ["JWKSFetcher"]
