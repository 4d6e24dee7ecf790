"""
Domain Models - Internal business logic models using dataclasses.

Values handed between components are typed dataclasses; only the HTTP
boundary and the persistence layer deal in plain mappings.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Identity:
    """
    Profile asserted by the identity provider.

    TRUST BOUNDARY: every field is copied verbatim from Google's userinfo
    response and is not re-validated here. Google is the trust source for
    each login; there is no local user table and no token revalidation.
    """

    provider_id: str
    display_name: str
    emails: tuple[str, ...] = ()
    photos: tuple[str, ...] = ()

    @property
    def primary_email(self) -> str | None:
        return self.emails[0] if self.emails else None

    @property
    def primary_photo(self) -> str | None:
        return self.photos[0] if self.photos else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the session store."""
        return {
            "provider_id": self.provider_id,
            "display_name": self.display_name,
            "emails": list(self.emails),
            "photos": list(self.photos),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Identity":
        """Rebuild from a session store record."""
        return cls(
            provider_id=data.get("provider_id", ""),
            display_name=data.get("display_name", ""),
            emails=tuple(data.get("emails") or ()),
            photos=tuple(data.get("photos") or ()),
        )


@dataclass
class Session:
    """
    Server-side browser session.

    A session with ``identity=None`` is anonymous. The bookkeeping flags are
    owned by the SessionManager and never persisted.
    """

    session_id: str
    created_at: datetime
    expires_at: datetime
    last_written_at: datetime | None = None
    identity: Identity | None = None

    # Not yet in the store (fresh anonymous session or rotated id)
    is_new: bool = field(default=False, compare=False)
    # Changed since the last store write
    modified: bool = field(default=False, compare=False)
    # Cookie must be (re)issued on this response
    needs_cookie: bool = field(default=False, compare=False)
    # Record removed; cookie must be dropped on this response
    destroyed: bool = field(default=False, compare=False)

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    def attach_identity(self, identity: Identity) -> None:
        """Attach (or wholesale replace) the authenticated identity."""
        self.identity = identity
        self.modified = True

    def clear_identity(self) -> None:
        self.identity = None
        self.modified = True


@dataclass(frozen=True)
class OAuthToken:
    """OAuth token data."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None


# ============================================================================
# Payment Models
# ============================================================================


class PaymentVerdict(str, Enum):
    """Outcome of a payment signature check."""

    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass(frozen=True)
class OrderRequest:
    """
    Provider-agnostic order creation request.

    Amount is already in the gateway's minor unit (paise for INR).
    """

    amount_minor: int
    currency: str
    receipt: str
    payment_capture: bool = True

    def __post_init__(self) -> None:
        """Validate order constraints."""
        if self.amount_minor <= 0:
            raise ValueError(f"Order amount must be positive: {self.amount_minor}")
        if not self.receipt:
            raise ValueError("Receipt cannot be empty")


@dataclass(frozen=True)
class PaymentOrder:
    """Gateway-issued order. The gateway is the system of record; never stored locally."""

    order_id: str
    amount: int
    currency: str
    receipt: str | None
    status: str
    payment_capture: bool = True
    entity: str = "order"
    amount_paid: int = 0
    amount_due: int = 0
    attempts: int = 0
    offer_id: str | None = None
    notes: dict[str, Any] | list[Any] = field(default_factory=dict)
    created_at: int | None = None
    # Gateway order object as received, including fields not modelled above
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class PaymentVerification:
    """Client-submitted proof that checkout completed. Consumed once, not stored."""

    order_id: str
    payment_id: str
    signature: str
