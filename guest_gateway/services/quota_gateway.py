"""
Guest Mode quota gateway.

Per request: resolve identity -> enforce role, velocity and daily quota ->
forward upstream -> commit usage on success -> enrich the response.

No state is kept in-process; every decision is made against the store, so
any number of gateway workers can run side by side.
"""
import json
import logging
from datetime import date
from typing import Any, Callable, Dict, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from guest_gateway.core.config import (
    get_upstream_api_key,
    get_upstream_timeout,
    get_upstream_url,
    get_velocity_window_seconds,
)
from guest_gateway.core.errors import (
    ConfigurationError,
    DailyLimitExceeded,
    DeviceLimitExceeded,
    IdentityBanned,
    InvalidJSON,
    InvalidMetadata,
    MissingIdentification,
    VelocityLimitExceeded,
)
from guest_gateway.core.role_limits import UNLIMITED, default_guest_policy, remaining_units, required_units
from guest_gateway.schemas.guest import DemoUsage, GuestMeta
from guest_gateway.services.identity_resolver import ResolvedIdentity, resolve_identity
from guest_gateway.services.upstream_client import UpstreamResult, forward_completion
from guest_gateway.services.usage_tracker import (
    consume_units,
    count_recent_requests,
    get_device_usage,
    record_request,
    usage_today,
)

logger = logging.getLogger(__name__)

META_KEY = "_meta"
DEMO_KEY = "_demo"

Forwarder = Callable[[Dict[str, Any], str, str, float], UpstreamResult]


def parse_meta(payload: Any) -> GuestMeta:
    if not isinstance(payload, dict):
        raise InvalidJSON("Request body must be a JSON object.")
    raw_meta = payload.get(META_KEY)
    if not isinstance(raw_meta, dict):
        raise MissingIdentification()
    try:
        meta = GuestMeta.model_validate(raw_meta)
    except ValidationError as e:
        raise InvalidMetadata(f"Malformed _meta block: {e.errors()[0].get('msg')}") from e
    if not meta.has_identifiers():
        raise MissingIdentification()
    return meta


def strip_meta(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if key != META_KEY}


def mask_signature(device_signature: str) -> str:
    """Short, non-correlatable device id for responses and UI."""
    return device_signature[:4] + "..."


def decode_body(raw: Union[bytes, str]) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidJSON("Request body must be valid JSON.")


def device_limit_for(resolved: ResolvedIdentity) -> int:
    """Guests share one allowance per device; other roles are capped per identity only."""
    guest_policy = default_guest_policy()
    if resolved.policy.name != guest_policy.name:
        return UNLIMITED
    return guest_policy.daily_limit


def _check_velocity(db: Session, identity_id: int, velocity_limit: int) -> None:
    if velocity_limit == UNLIMITED:
        return
    window = get_velocity_window_seconds()
    recent = count_recent_requests(db, identity_id, window)
    if recent >= velocity_limit:
        logger.warning("Velocity limit hit for identity %s: %s requests in %ss", identity_id, recent, window)
        raise VelocityLimitExceeded(window)


def _check_quota(db: Session, resolved: ResolvedIdentity, unit_count: int, usage_date: date) -> int:
    """
    Raise if the request would not fit today's allowance.

    Returns the usage to report: the device-wide total for guests, the
    identity's own count otherwise.
    """
    limit = resolved.policy.daily_limit
    required = required_units(unit_count)
    if limit != UNLIMITED and resolved.current_usage + required > limit:
        logger.info(
            "Daily limit reached for identity %s: %s/%s",
            resolved.identity.id, resolved.current_usage, limit
        )
        raise DailyLimitExceeded(resolved.current_usage, limit)

    device_limit = device_limit_for(resolved)
    if device_limit == UNLIMITED:
        return resolved.current_usage
    device_usage = get_device_usage(db, resolved.device_signature, usage_date)
    if device_usage + required > device_limit:
        logger.warning(
            "Device limit reached for identity %s on signature %s...: %s/%s",
            resolved.identity.id, resolved.device_signature[:8], device_usage, device_limit
        )
        raise DeviceLimitExceeded(device_usage, device_limit)
    return device_usage


def _enrich(body: Dict[str, Any], usage: int, limit: int, device_signature: str) -> Dict[str, Any]:
    demo = DemoUsage(
        usage=usage,
        limit=limit,
        remaining=remaining_units(limit, usage),
        device_id=mask_signature(device_signature),
    )
    enriched = dict(body)
    enriched[DEMO_KEY] = demo.model_dump(by_alias=True)
    return enriched


def handle_guest_request(
    db: Optional[Session],
    raw_body: Union[bytes, str],
    forwarder: Optional[Forwarder] = None,
    usage_date: Optional[date] = None,
) -> Tuple[int, Dict[str, Any]]:
    """
    Run one metered guest request end to end.

    Returns (status_code, body) for the success and upstream-failure paths.
    Every rejection is raised as a GatewayError subclass for the route to
    render; store connectivity failures surface as ConfigurationError.
    """
    api_key = get_upstream_api_key()
    if db is None:
        raise ConfigurationError("database not configured")
    if api_key is None:
        raise ConfigurationError("GROQ_API_KEY not configured")

    payload = decode_body(raw_body)
    meta = parse_meta(payload)
    unit_count = meta.unit_count
    usage_date = usage_date or usage_today()

    try:
        resolved = resolve_identity(db, meta.client_token, meta.device_signature, unit_count, usage_date)
        identity_id = resolved.identity.id
        device_signature = resolved.device_signature
        policy = resolved.policy
        if policy.is_banned:
            logger.warning("Banned identity %s attempted a request", identity_id)
            raise IdentityBanned()
        _check_velocity(db, identity_id, policy.velocity_limit)
        usage = _check_quota(db, resolved, unit_count, usage_date)
        # Only requests that pass every check count toward velocity
        record_request(db, identity_id)
        db.commit()
    except (OperationalError, InterfaceError) as e:
        db.rollback()
        raise ConfigurationError(f"store unreachable: {e}") from e

    limit = policy.daily_limit
    device_limit = device_limit_for(resolved)

    forwarder = forwarder or forward_completion
    upstream = forwarder(strip_meta(payload), api_key, get_upstream_url(), get_upstream_timeout())
    if not upstream.ok:
        return upstream.status_code, upstream.body

    if unit_count > 0:
        try:
            new_count = consume_units(
                db, identity_id, unit_count, limit, usage_date,
                device_signature=device_signature, device_limit=device_limit,
            )
            if new_count is not None and device_limit != UNLIMITED:
                new_count = get_device_usage(db, device_signature, usage_date)
        except (OperationalError, InterfaceError) as e:
            db.rollback()
            raise ConfigurationError(f"store unreachable: {e}") from e
        if new_count is None:
            # Lost the race for the last units after the upstream already answered
            logger.warning("Quota commit rejected for identity %s; limit %s reached concurrently", identity_id, limit)
            raise DailyLimitExceeded(limit, limit)
        usage = new_count

    return upstream.status_code, _enrich(upstream.body, usage, limit, device_signature)
