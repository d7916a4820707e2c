"""Flask extension guarding routes with Fireface ID token verification.

Request flow:
1. Extract the bearer token from the request
2. Verify it with the configured TokenVerifier (usually an AuthClient)
3. Store the DecodedIdToken in ``flask.g.id_token`` for the view
4. Convert auth errors to HTTP responses (401, or 503 when keys are unavailable)
"""

from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Any, Final

import structlog
from flask import Flask, abort, g

from .errors import AuthError
from .extractors import BearerExtractor

if TYPE_CHECKING:
    from collections.abc import Callable

    from .protocols import Extractor, TokenVerifier

logger = structlog.get_logger(__name__)

_EXT_KEY: Final[str] = "fireface_auth"
"""Flask extensions registry key for AuthExtension."""


class AuthExtension:
    """
    Flask decorator glue for ID token authentication.

    Usage:
        auth = AuthExtension(client)
        auth.init_app(app)

        @app.get("/me")
        @auth.require()
        def me():
            return {"sub": g.id_token.sub}
    """

    def __init__(
        self,
        verifier: TokenVerifier | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        self._verifier = verifier
        self._extractor: Extractor = extractor or BearerExtractor()

    def init_app(
        self,
        app: Flask,
        *,
        verifier: TokenVerifier | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        """Register the extension on ``app``, optionally replacing collaborators."""
        if verifier is not None:
            self._verifier = verifier
        if extractor is not None:
            self._extractor = extractor
        if self._verifier is None:
            raise RuntimeError("AuthExtension needs a verifier before init_app")

        app.extensions[_EXT_KEY] = self

    def require(self) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator that rejects requests without a valid ID token.

        Error mapping:
        - ``MissingToken``, ``MalformedToken``, ``UnknownKey``,
          ``InvalidSignature``, ``ExpiredToken`` ... -> HTTP 401
        - ``FetchError`` / ``ParseError`` (no key set ever fetched) -> HTTP 503
        - Any other error -> HTTP 401 ("Authentication failed")
        """

        def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                verifier = self._verifier
                if verifier is None:
                    abort(500, description="Authentication is not configured")

                try:
                    token = self._extractor.extract()
                    g.id_token = verifier.verify_id_token(token)
                except AuthError as e:
                    abort(e.error_code, description=e.description)
                except Exception:
                    logger.exception("id_token_verification_crashed")
                    abort(401, description="Authentication failed")

                return view(*args, **kwargs)

            return wrapper

        return decorator
