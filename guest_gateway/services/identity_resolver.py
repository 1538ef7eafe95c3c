"""
Resolve "who is this" from the two weak identifiers a guest client sends.

The client token is the primary key. A known token always uses the device
signature it was registered with; the signature on the wire is only trusted,
and only for a read, when the token has never been seen before.
"""
import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from guest_gateway.core.errors import DeviceLimitExceeded
from guest_gateway.core.role_limits import (
    GUEST_ROLE_ID,
    UNLIMITED,
    RolePolicy,
    default_guest_policy,
    required_units,
    resolve_role_policy,
)
from guest_gateway.models.client_identity import ClientIdentity
from guest_gateway.services.usage_tracker import get_device_usage, get_identity_usage, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ResolvedIdentity:
    identity: ClientIdentity
    policy: RolePolicy
    current_usage: int
    is_new: bool

    @property
    def device_signature(self) -> str:
        return self.identity.device_signature


def find_identity(db: Session, client_token: str):
    return db.query(ClientIdentity).filter(ClientIdentity.client_token == client_token).first()


def _register_identity(db: Session, client_token: str, device_signature: str) -> ClientIdentity:
    """
    Bind client_token to device_signature permanently.

    Two first requests for the same token can race here; the loser's insert
    hits the unique constraint and it adopts the winner's row instead.
    """
    identity = ClientIdentity(
        client_token=client_token,
        device_signature=device_signature,
        role_id=GUEST_ROLE_ID,
    )
    db.add(identity)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_identity(db, client_token)
        if existing is None:
            raise
        logger.info("Identity %s... registered concurrently, using existing row", client_token[:8])
        return existing
    db.refresh(identity)
    logger.info(
        "New identity created: %s... with signature %s...",
        client_token[:8], device_signature[:8]
    )
    return identity


def resolve_identity(db: Session, client_token: str, device_signature: str, unit_count: int, usage_date: date) -> ResolvedIdentity:
    """
    Look up or create the identity for this request and read its usage.

    Raises DeviceLimitExceeded, without creating anything, when an unseen
    client token arrives from a device whose identities have already used up
    the guest allowance for today.
    """
    identity = find_identity(db, client_token)

    if identity is not None:
        identity.last_seen_at = utcnow()
        db.commit()
        policy = resolve_role_policy(identity.role)
        current_usage = get_identity_usage(db, identity.id, usage_date)
        logger.info(
            "Existing identity: %s..., usage %s/%s",
            client_token[:8], current_usage, policy.daily_limit
        )
        return ResolvedIdentity(identity=identity, policy=policy, current_usage=current_usage, is_new=False)

    guest_policy = default_guest_policy()
    device_usage = get_device_usage(db, device_signature, usage_date)
    if guest_policy.daily_limit != UNLIMITED and device_usage + required_units(unit_count) > guest_policy.daily_limit:
        logger.warning("Device limit exceeded for signature %s...", device_signature[:8])
        raise DeviceLimitExceeded(device_usage, guest_policy.daily_limit)

    identity = _register_identity(db, client_token, device_signature)
    policy = resolve_role_policy(identity.role)
    current_usage = get_identity_usage(db, identity.id, usage_date)
    return ResolvedIdentity(identity=identity, policy=policy, current_usage=current_usage, is_new=True)
