"""JWT token management for user sessions."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import jwt
from pydantic import BaseModel, Field

from incident_hub.config import settings

logger = logging.getLogger("api.auth")


class TokenPayload(BaseModel):
    """JWT token payload structure."""

    sub: str = Field(..., description="Subject (user ID)")
    exp: datetime = Field(..., description="Expiration time")
    iat: datetime = Field(..., description="Issued at time")
    jti: str = Field(..., description="JWT ID (unique token identifier)")
    type: str = Field(default="access", description="Token type: access or refresh")
    roles: list[str] = Field(default_factory=list, description="User roles")


class TokenPair(BaseModel):
    """Access and refresh token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


class JWTConfig(BaseModel):
    """JWT configuration."""

    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7
    issuer: str = "incident-hub-api"
    audience: str = "incident-hub-client"


class JWTManager:
    """
    Manages JWT token creation, validation, and refresh.

    Revoked token ids are kept in Redis when ``redis_url`` is configured,
    otherwise in process memory.
    """

    def __init__(self, config: Optional[JWTConfig] = None):
        self.config = config or JWTConfig(
            secret_key=settings.secret_key,
            algorithm=settings.jwt_algorithm,
            access_token_expire_minutes=settings.jwt_access_expire_minutes,
            refresh_token_expire_days=settings.jwt_refresh_expire_days,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )

        self._blacklist: set[str] = set()
        self._redis = None
        self._redis_available = False
        self._init_redis()

    def _init_redis(self) -> None:
        """Initialize Redis connection for token blacklist."""
        if not settings.redis_url:
            logger.info("Redis URL not configured, JWT blacklist kept in memory")
            return
        try:
            import redis
            self._redis = redis.from_url(settings.redis_url, decode_responses=True)
            self._redis.ping()
            self._redis_available = True
            logger.info("JWT blacklist using Redis")
        except Exception as e:
            logger.warning(f"Failed to connect to Redis for JWT blacklist: {e}")

    def _is_token_blacklisted(self, jti: str) -> bool:
        """Check if a token JTI is blacklisted."""
        if self._redis_available and self._redis:
            try:
                return self._redis.exists(f"jwt:blacklist:{jti}") > 0
            except Exception as e:
                logger.warning(f"Redis blacklist check failed: {e}")

        return jti in self._blacklist

    def _add_to_blacklist(self, jti: str, exp: datetime) -> bool:
        """Add a token JTI to the blacklist until it would have expired."""
        now = datetime.now(timezone.utc)
        ttl_seconds = max(int((exp - now).total_seconds()), 1)

        if self._redis_available and self._redis:
            try:
                self._redis.setex(f"jwt:blacklist:{jti}", ttl_seconds, "1")
                logger.info(f"Token blacklisted in Redis: {jti[:8]}... (TTL: {ttl_seconds}s)")
                return True
            except Exception as e:
                logger.error(f"Failed to blacklist token in Redis: {e}")

        self._blacklist.add(jti)
        logger.info(f"Token blacklisted in memory: {jti[:8]}...")
        return True

    def _encode(self, subject: str, token_type: str, expire: datetime, **claims) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "exp": expire,
            "iat": now,
            "jti": str(uuid4()),
            "type": token_type,
            "iss": self.config.issuer,
            "aud": self.config.audience,
            **claims,
        }
        return jwt.encode(payload, self.config.secret_key, algorithm=self.config.algorithm)

    def create_access_token(self, subject: str, roles: Optional[list[str]] = None) -> str:
        """Create a short-lived access token carrying the user's roles."""
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=self.config.access_token_expire_minutes
        )
        return self._encode(subject, "access", expire, roles=roles or [])

    def create_refresh_token(self, subject: str) -> str:
        """
        Create a new refresh token.

        Refresh tokens have longer expiry and carry no roles; roles are
        re-read from the user record on refresh.
        """
        expire = datetime.now(timezone.utc) + timedelta(
            days=self.config.refresh_token_expire_days
        )
        return self._encode(subject, "refresh", expire)

    def create_token_pair(self, subject: str, roles: Optional[list[str]] = None) -> TokenPair:
        """Create both access and refresh tokens."""
        return TokenPair(
            access_token=self.create_access_token(subject, roles),
            refresh_token=self.create_refresh_token(subject),
            expires_in=self.config.access_token_expire_minutes * 60,
        )

    def decode_token(self, token: str) -> Optional[TokenPayload]:
        """
        Decode and validate a JWT token.

        Returns:
            TokenPayload if valid, None if invalid, expired or revoked
        """
        try:
            payload = jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[self.config.algorithm],
                audience=self.config.audience,
                issuer=self.config.issuer,
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None

        jti = payload.get("jti")
        if jti and self._is_token_blacklisted(jti):
            logger.warning(f"Attempted use of blacklisted token: {jti[:8]}...")
            return None

        return TokenPayload(
            sub=payload["sub"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            jti=payload.get("jti", ""),
            type=payload.get("type", "access"),
            roles=payload.get("roles", []),
        )

    def blacklist_token(self, token: str) -> bool:
        """Revoke a token (logout). Expired tokens may still be revoked."""
        try:
            payload = jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[self.config.algorithm],
                options={
                    "verify_exp": False,
                    "verify_aud": False,
                    "verify_iss": False,
                },
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Cannot blacklist invalid token: {e}")
            return False

        jti = payload.get("jti")
        if not jti:
            logger.warning("Token has no JTI, cannot blacklist")
            return False

        exp_timestamp = payload.get("exp")
        if exp_timestamp:
            exp = datetime.fromtimestamp(exp_timestamp, tz=timezone.utc)
        else:
            exp = datetime.now(timezone.utc) + timedelta(days=self.config.refresh_token_expire_days)

        return self._add_to_blacklist(jti, exp)


_jwt_manager: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    """Get or create the JWT manager instance."""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager()
    return _jwt_manager
