from fastapi import APIRouter, Depends
from pymongo.errors import PyMongoError

from timeledger.db import get_database
from timeledger.exceptions import TimeTrackingError, get_store_unavailable_exception, to_http_exception
from timeledger.schemas.invoice import InvoicePeriod
from timeledger.utils.share_utils import resolve_share_link

router = APIRouter()


@router.get("/invoice/{token}", response_model=InvoicePeriod)
async def get_public_invoice(token: str, database=Depends(get_database)):
    """
    Read-only invoice behind a share link. No authentication.
    Raises:
        HTTPException:
            - 410 if the link has expired
            - 401 if the link is malformed or has been tampered with
    """
    try:
        return await resolve_share_link(database, token)
    except TimeTrackingError as e:
        raise to_http_exception(e)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)
