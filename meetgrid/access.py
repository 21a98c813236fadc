"""Per-event anonymous identity and session control.

An identity is a display name, unique case-insensitively within one event.
Signing in yields a signed credential scoped to that event; the server keeps
no session state, so signing out is just dropping the credential.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from meetgrid.errors import AuthError, LockedError, NotFoundError, ValidationError
from meetgrid.models.events import StoredEvent, StoredResponse, normalize_name
from meetgrid.stores.base import EventStore

logger = logging.getLogger("meetgrid.access")

_HASH_ALGORITHM = "pbkdf2_sha256"


class SessionState(str, Enum):
    SIGNED_OUT = "signed_out"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Session:
    event_id: str
    state: SessionState = SessionState.SIGNED_OUT
    identity: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED


def hash_password(password: str, iterations: int = 100_000) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations).hex()
    return f"{_HASH_ALGORITHM}${iterations}${salt}${digest}"


def verify_password(password: str, stored: str | None) -> bool:
    if not stored:
        return False
    try:
        algorithm, iterations, salt, digest = stored.split("$")
    except ValueError:
        return False
    if algorithm != _HASH_ALGORITHM:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations)).hex()
    return hmac.compare_digest(candidate, digest)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class SessionTokens:
    """Issues and verifies ``payload.signature`` credentials.

    The payload is base64url JSON ``{"sub", "evt", "iat", "exp"}``; the
    signature is HMAC-SHA256 over the encoded payload.
    """

    def __init__(self, secret: str, ttl_seconds: int = 24 * 60 * 60) -> None:
        if not secret:
            raise ValueError("session secret must not be empty")
        self._secret = secret.encode()
        self.ttl_seconds = ttl_seconds

    def _sign(self, payload: str) -> str:
        return _b64encode(hmac.new(self._secret, payload.encode(), hashlib.sha256).digest())

    def issue(self, identity: str, event_id: str, now: float | None = None) -> str:
        issued = int(now if now is not None else time.time())
        claims = {"sub": identity, "evt": event_id, "iat": issued, "exp": issued + self.ttl_seconds}
        payload = _b64encode(json.dumps(claims, separators=(",", ":"), sort_keys=True).encode())
        return f"{payload}.{self._sign(payload)}"

    def verify(self, token: str | None, event_id: str, now: float | None = None) -> str:
        """Return the identity bound to ``token`` for ``event_id``."""
        if not token:
            raise AuthError(detail="Not authenticated")
        payload, sep, signature = token.partition(".")
        if not sep or not hmac.compare_digest(self._sign(payload), signature):
            raise AuthError(detail="Invalid token")
        try:
            claims = json.loads(_b64decode(payload))
        except (ValueError, UnicodeDecodeError) as e:
            raise AuthError(detail="Invalid token") from e
        current = now if now is not None else time.time()
        if not isinstance(claims, dict) or not claims.get("sub"):
            raise AuthError(detail="Invalid token")
        if claims.get("exp", 0) <= current:
            raise AuthError(detail="Session expired")
        if claims.get("evt") != event_id:
            raise AuthError(detail="Token is not valid for this event")
        return claims["sub"]

    def pseudonym(self, event_id: str, identity: str) -> str:
        """Stable anonymized name for ``identity`` within ``event_id``."""
        message = f"{event_id}:{normalize_name(identity)}".encode()
        return "anon-" + hmac.new(self._secret, message, hashlib.sha256).hexdigest()[:12]


def cookie_name(event_id: str, prefix: str = "auth_token_") -> str:
    return f"{prefix}{event_id}"


def verify_session(tokens: SessionTokens, event_id: str, credential: str | None) -> str:
    return tokens.verify(credential, event_id)


def resolve_session(tokens: SessionTokens, event_id: str, credential: str | None) -> Session:
    """Like :func:`verify_session` but yields a SIGNED_OUT session instead of raising."""
    try:
        identity = tokens.verify(credential, event_id)
    except AuthError:
        return Session(event_id=event_id)
    return Session(event_id=event_id, state=SessionState.AUTHENTICATED, identity=identity)


def sign_out(event_id: str, prefix: str = "auth_token_") -> str:
    """Name of the credential the client must drop."""
    if not event_id:
        raise ValidationError.for_fields(["eventId"], detail="Event ID is required")
    return cookie_name(event_id, prefix)


async def sign_in(
    store: EventStore,
    tokens: SessionTokens,
    event_id: str | None,
    name: str | None,
    password: str | None = None,
    password_iterations: int = 100_000,
) -> tuple[Session, str]:
    """Authenticate ``name`` on an event, creating the identity on first use.

    Returns the authenticated session and its signed credential.
    """
    missing = []
    if not event_id:
        missing.append("eventId")
    if not name or not name.strip():
        missing.append("userName")
    if missing:
        raise ValidationError.for_fields(missing)
    name = name.strip()

    event = await store.get(event_id)
    if event is None:
        raise NotFoundError(detail="Event not found", event_id=event_id)

    if event.requires_password and not password:
        logger.info("sign-in rejected event=%s reason=password_required", event_id)
        raise AuthError(detail="Password is required for response-limited events")

    existing = event.find_response(name)
    if existing is not None:
        if event.requires_password and not verify_password(password, existing.password_hash):
            logger.info("sign-in rejected event=%s reason=password_mismatch", event_id)
            raise AuthError(detail="Incorrect password")
        identity = existing.name
    else:
        if event.is_locked_for_new:
            raise LockedError(
                detail=f"This event has reached its limit of {event.response_limit} responses",
                response_limit=event.response_limit,
            )
        password_hash = hash_password(password, password_iterations) if password else None

        def add_identity(doc: StoredEvent) -> None:
            # Re-checked under the store's atomic update: another sign-in may
            # have landed since the read above.
            if doc.find_response(name) is not None:
                return
            if doc.is_locked_for_new:
                raise LockedError(
                    detail=f"This event has reached its limit of {doc.response_limit} responses",
                    response_limit=doc.response_limit,
                )
            now = datetime.now(UTC).isoformat()
            doc.responses[normalize_name(name)] = StoredResponse(
                name=name,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )

        event = await store.update(event_id, add_identity)
        stored = event.find_response(name)
        if event.requires_password and not verify_password(password, stored.password_hash):
            raise AuthError(detail="Incorrect password")
        identity = stored.name
        logger.info("created identity event=%s responses=%d", event_id, len(event.responses))

    token = tokens.issue(identity, event_id)
    return Session(event_id=event_id, state=SessionState.AUTHENTICATED, identity=identity), token
