"""Session and identity gateway."""

import base64
import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

from ..config import Config
from ..error_handling import AuthenticationError
from ..logging_config import get_logger, log_security_event, log_user_action

logger = get_logger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^\s@<>]+@[^\s@<>]+$")
_SCRIPT_PATTERNS = [
    r"(?is)<script[^>]*>.*?</script>",
    r"(?i)<img[^>]*onerror[^>]*>",
    r"(?i)<svg[^>]*onload[^>]*>",
    r"(?i)javascript:",
]


@dataclass
class UserProfile:
    """Profile of the signed-in user as delivered by the identity provider."""

    id: str
    email: str
    name: str | None = None
    picture: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"id": self.id, "name": self.name, "email": self.email, "picture": self.picture}


@dataclass
class Session:
    profile: UserProfile
    token: str | None
    expires_at: datetime | None


class IdentityAuthService:
    """
    Holds the current user session.

    Sign-in itself happens in the identity provider's SDK; this service receives
    the resulting ID token, reads the profile claims from it and tracks its
    expiry. Token signatures are not verified here.
    """

    def __init__(self, config: Config | None = None, clock: Callable[[], datetime] | None = None) -> None:
        self.config = config or Config()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._session: Session | None = None
        self._development_mode = self.config.is_development() and self.config.get(
            "DEV_AUTH_ENABLED", False, bool
        )

        if self._development_mode:
            logger.info("development_auth_mode_enabled")

    def _get_development_user(self) -> UserProfile:
        dev_email = self.config.get("DEV_USER_EMAIL", "dev@example.com")
        dev_name = self.config.get("DEV_USER_NAME", "Development User")
        dev_user_id = self.config.get("DEV_USER_ID", "dev-user-123")

        if "@" not in dev_email:
            logger.warning("invalid_dev_user_email", email=dev_email)
            dev_email = "dev@example.com"

        return UserProfile(id=dev_user_id.strip(), email=dev_email, name=dev_name.strip() or None)

    def sign_in(self, id_token: str | None = None) -> UserProfile:
        """
        Start a session from an identity token.

        Args:
            id_token: JWT delivered by the identity provider. May be omitted in
                development mode, where a configured development user is used.

        Returns:
            UserProfile: The signed-in user

        Raises:
            AuthenticationError: If the token is missing, malformed or expired
        """
        if id_token is None and self._development_mode:
            profile = self._get_development_user()
            self._session = Session(profile=profile, token=None, expires_at=None)
            log_user_action(profile.id, "development_sign_in", email=profile.email)
            return profile

        if not id_token:
            raise AuthenticationError(
                "An identity token is required to sign in",
                code="token_missing",
                details={"operation": "sign_in"},
            )

        payload = self._decode_jwt_payload(id_token)
        expires_at = self._read_expiry(payload)
        if expires_at is not None and expires_at <= self._clock():
            raise AuthenticationError(
                "Identity token has expired",
                code="token_expired",
                user_message="Your session has expired. Please sign in again.",
                details={"operation": "sign_in", "expired_at": expires_at.isoformat()},
            )

        profile = self._extract_profile(payload)
        self._session = Session(profile=profile, token=id_token, expires_at=expires_at)
        log_user_action(profile.id, "sign_in", email=profile.email)
        return profile

    def sign_out(self) -> None:
        user_id = self._session.profile.id if self._session else None
        self._session = None
        log_user_action(user_id or "unknown", "sign_out")

    def is_authenticated(self) -> bool:
        """True while a session exists and its token has not expired."""
        if self._session is None:
            return False
        expires_at = self._session.expires_at
        if expires_at is not None and expires_at <= self._clock():
            log_security_event("session_expired", user_id=self._session.profile.id)
            self.sign_out()
            return False
        return True

    def get_token(self) -> str | None:
        return self._session.token if self.is_authenticated() and self._session else None

    async def token_provider(self) -> str | None:
        """Coroutine form of ``get_token`` for HTTP-based stores and backends."""
        return self.get_token()

    def get_user_profile(self) -> UserProfile | None:
        return self._session.profile if self.is_authenticated() and self._session else None

    def ensure_authenticated(self) -> UserProfile:
        """
        Return the current profile or fail.

        Raises:
            AuthenticationError: If no valid session exists
        """
        profile = self.get_user_profile()
        if profile is None:
            raise AuthenticationError(
                "User is not authenticated",
                code="user_not_authenticated",
                details={"operation": "ensure_authenticated"},
            )
        return profile

    def _decode_jwt_payload(self, jwt_token: str) -> dict[str, Any]:
        parts = jwt_token.split(".")
        if len(parts) != 3:
            raise AuthenticationError(
                "Invalid JWT token format",
                code="token_malformed",
                details={"operation": "sign_in", "segments": len(parts)},
            )

        payload_b64 = parts[1]
        payload_b64 += "=" * (-len(payload_b64) % 4)
        try:
            payload = json.loads(base64.urlsafe_b64decode(payload_b64).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise AuthenticationError(
                f"Failed to decode JWT payload: {e}",
                code="token_malformed",
                details={"operation": "sign_in"},
                original_exception=e,
            ) from e

        if not isinstance(payload, dict):
            raise AuthenticationError(
                "JWT payload is not an object", code="token_malformed", details={"operation": "sign_in"}
            )
        return payload

    @staticmethod
    def _read_expiry(payload: dict[str, Any]) -> datetime | None:
        exp = payload.get("exp")
        if exp is None:
            return None
        try:
            return datetime.fromtimestamp(float(exp), UTC)
        except (TypeError, ValueError, OverflowError) as e:
            raise AuthenticationError(
                f"Invalid exp claim: {exp!r}",
                code="token_malformed",
                details={"operation": "sign_in"},
                original_exception=e,
            ) from e

    @staticmethod
    def _clean_display_text(value: Any) -> str | None:
        """Strip script markup and control characters. HTML escaping is left to the renderer."""
        if not value:
            return None
        cleaned = str(value)
        for pattern in _SCRIPT_PATTERNS:
            cleaned = re.sub(pattern, "", cleaned)
        cleaned = "".join(ch for ch in cleaned if ch.isprintable()).strip()
        return cleaned or None

    @staticmethod
    def _valid_picture_url(value: Any) -> str | None:
        if not value:
            return None
        try:
            parsed = urlsplit(str(value))
        except ValueError:
            parsed = None
        if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.warning("profile_picture_rejected", picture=str(value)[:200])
            return None
        return str(value)

    def _extract_profile(self, payload: dict[str, Any]) -> UserProfile:
        # Firebase ID tokens carry user_id; generic OIDC tokens only sub
        user_id = payload.get("user_id") or payload.get("sub")
        email = payload.get("email")

        if not isinstance(user_id, str) or not user_id.strip():
            raise AuthenticationError(
                "Subject (user ID) not found in JWT payload", code="token_invalid", details={"operation": "sign_in"}
            )
        if not isinstance(email, str) or not _EMAIL_PATTERN.match(email):
            raise AuthenticationError(
                "Email missing or invalid in JWT payload", code="token_invalid", details={"operation": "sign_in"}
            )

        return UserProfile(
            id=user_id.strip(),
            email=email,
            name=self._clean_display_text(payload.get("name")),
            picture=self._valid_picture_url(payload.get("picture")),
        )
