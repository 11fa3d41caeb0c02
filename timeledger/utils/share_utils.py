import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

from jose import JWTError, jwt

from timeledger.config import settings
from timeledger.exceptions import TokenExpired, TokenInvalid
from timeledger.models.time_entries import PaymentStatus
from timeledger.schemas.invoice import InvoicePeriod, ShareLink, ShareQuery
from timeledger.utils.invoice_utils import compute_invoice
from timeledger.utils.timezone_utils import ensure_utc

UTC = timezone.utc

SHARE_TOKEN_TYPE = "invoice_share"

secret_key = settings.SECRET_KEY
algorithm = settings.ALGORITHM

logger = logging.getLogger(__name__)


def issue_share_token(owner_id: str, start_date: date, end_date: date, payment_status: Optional[PaymentStatus],
                      ttl: timedelta, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """
    Signs a read-only invoice query for `owner_id`.
    Args:
        owner_id (str): owner whose entries the token exposes
        start_date (date), end_date (date): inclusive local date range
        payment_status (PaymentStatus): status filter, None for every status
        ttl (timedelta): lifetime of the token
        now (datetime): issue instant, defaults to the current time
    Returns:
        tuple: (token, expires_at) where expires_at is the instant encoded in the token
    """
    now = ensure_utc(now or datetime.now(UTC))
    issued_at = int(now.timestamp())
    expires_at = int((now + ttl).timestamp())

    data_to_encode = {
        "data": {
            "sub": owner_id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "payment_status": PaymentStatus(payment_status).value if payment_status else None,
        },
        "typ": SHARE_TOKEN_TYPE,
        "iat": issued_at,
        "exp": expires_at,
    }
    encoded_data: str = jwt.encode(data_to_encode, secret_key, algorithm)

    return encoded_data, datetime.fromtimestamp(expires_at, UTC)


def validate_share_token(token: str, now: Optional[datetime] = None) -> ShareQuery:
    """
    Returns the query embedded in a share token.
    Raises:
        TokenInvalid: bad signature, wrong token type or malformed payload
        TokenExpired: a well-formed token whose expiry instant has been reached
    """
    now = ensure_utc(now or datetime.now(UTC))
    try:
        # Expiry is checked below against `now` so the expired/invalid outcomes stay distinct.
        payload = jwt.decode(token, secret_key, algorithms=[algorithm], options={"verify_exp": False})
    except JWTError as e:
        logger.warning("Rejected share token: %s", e)
        raise TokenInvalid()

    if payload.get("typ") != SHARE_TOKEN_TYPE:
        logger.warning("Rejected share token: unexpected token type")
        raise TokenInvalid()

    try:
        data = payload["data"]
        query = ShareQuery(
            owner_id=data["sub"],
            start_date=data["start_date"],
            end_date=data["end_date"],
            payment_status=data.get("payment_status"),
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )
    except (KeyError, TypeError, ValueError, OverflowError, OSError) as e:
        logger.warning("Rejected share token: malformed payload (%s)", type(e).__name__)
        raise TokenInvalid()

    # A token without a positive lifetime never grants access.
    if query.expires_at <= query.issued_at or now > query.expires_at:
        raise TokenExpired()
    return query


def build_share_link(owner_id: str, start_date: date, end_date: date, payment_status: Optional[PaymentStatus],
                     ttl_days: int, now: Optional[datetime] = None) -> ShareLink:
    token, expires_at = issue_share_token(owner_id, start_date, end_date, payment_status, timedelta(days=ttl_days), now)
    public_url = f"{settings.SHARE_LINK_BASE_URL.rstrip('/')}/public/invoice/{token}"
    logger.info("Share link issued for owner %s covering %s to %s, expires %s", owner_id, start_date, end_date, expires_at)
    return ShareLink(token=token, public_url=public_url, expires_at=expires_at)


async def resolve_share_link(database, token: str, now: Optional[datetime] = None) -> InvoicePeriod:
    """Validates the token, then re-runs its query against current data, oldest day first."""
    query = validate_share_token(token, now)
    return await compute_invoice(
        database,
        query.owner_id,
        query.start_date,
        query.end_date,
        query.payment_status,
        ascending=True,
    )
