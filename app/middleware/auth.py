import jwt
from typing import Dict, Any, List, Optional
from starlette.concurrency import run_in_threadpool
from app.config import Settings
from app.errors import AuthError
import structlog

logger = structlog.get_logger()

MISSING_TOKEN_MESSAGE = "Unauthorized: No ID token provided."
INVALID_TOKEN_MESSAGE = "Unauthorized: Invalid ID token."


class TokenVerifier:
    """
    Verifies ID tokens issued by the identity provider.

    Tokens are checked against a shared secret, or against the provider's
    signing keys when a JWKS URL is configured.
    """

    def __init__(self, secret: Optional[str] = None, algorithms: Optional[List[str]] = None,
                 jwks_url: Optional[str] = None, audience: Optional[str] = None,
                 issuer: Optional[str] = None):
        self.secret = secret or None
        self.algorithms = algorithms or ["HS256"]
        self.audience = audience
        self.issuer = issuer
        self.jwks_client = jwt.PyJWKClient(jwks_url) if jwks_url else None

    @property
    def configured(self) -> bool:
        return self.secret is not None or self.jwks_client is not None

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        algorithms = settings.auth_algorithms
        if settings.auth_jwks_url and algorithms == ["HS256"]:
            algorithms = ["RS256"]
        return cls(
            secret=settings.auth_jwt_secret,
            algorithms=algorithms,
            jwks_url=settings.auth_jwks_url,
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
        )

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Verify an ID token and return the payload.

        Args:
            token: Encoded JWT taken from the Authorization header

        Returns:
            Dict containing the user id and the full token payload

        Raises:
            AuthError: If the token is invalid, expired or has no subject, or
                no verification key is configured
        """
        if not self.configured:
            logger.error("No ID token verification key configured")
            raise AuthError(INVALID_TOKEN_MESSAGE)

        try:
            if self.jwks_client is not None:
                key = self.jwks_client.get_signing_key_from_jwt(token).key
            else:
                key = self.secret

            payload = jwt.decode(
                token,
                key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": True, "verify_aud": self.audience is not None}
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            raise AuthError(INVALID_TOKEN_MESSAGE)
        except jwt.PyJWTError as e:
            logger.warning("Token verification failed", error=str(e))
            raise AuthError(INVALID_TOKEN_MESSAGE)

        # Firebase-style tokens carry the uid in both "sub" and "user_id"
        user_id = payload.get("sub") or payload.get("user_id")
        if not user_id:
            logger.warning("Invalid token: missing user ID")
            raise AuthError(INVALID_TOKEN_MESSAGE)

        logger.info("Token verified successfully", user_id=user_id)

        return {
            "user_id": user_id,
            "email": payload.get("email"),
            "full_payload": payload
        }


async def authenticate(authorization: Optional[str], verifier: TokenVerifier) -> Dict[str, Any]:
    """
    Verify the bearer token from an Authorization header value.

    Args:
        authorization: Raw Authorization header, possibly missing
        verifier: Shared token verifier

    Returns:
        Dict containing the user id and the full token payload
    """
    if not authorization or not authorization.startswith("Bearer "):
        logger.warning("Missing bearer token")
        raise AuthError(MISSING_TOKEN_MESSAGE)

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthError(MISSING_TOKEN_MESSAGE)

    # JWKS lookups may hit the network
    return await run_in_threadpool(verifier.verify, token)
