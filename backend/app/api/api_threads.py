from fastapi import APIRouter, Depends, Header, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional
import hashlib

from .. import models, schemas
from ..services import conversations, messaging
from ..utils.json import dumps_bytes as _json_dumps
from .dependencies import get_db, get_current_user

router = APIRouter(tags=["threads"])


@router.get("/conversations", response_model=List[schemas.Conversation])
def list_conversations(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Conversations derived from the user's open bookings, most recent first."""
    return conversations.list_conversations(db, current_user.id)


# ---- /inbox/unread -----------------------------------------------------------

def _unread_etag(user_id: int, total: int, latest_ts) -> str:
    # full precision iso (no timespec truncation)
    marker = latest_ts.isoformat() if latest_ts else "0"
    return f'W/"{hashlib.sha1(f"{user_id}:{int(total)}:{marker}".encode()).hexdigest()}"'


@router.get(
    "/inbox/unread",
    response_model=schemas.UnreadCountResponse,
    responses={304: {"description": "Not Modified"}},
)
def get_inbox_unread(
    if_none_match: Optional[str] = Header(default=None, alias="If-None-Match"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Unread messages addressed to the current user, with weak ETag support."""
    total, latest_ts = messaging.get_unread_totals(db, current_user.id)
    etag_value = _unread_etag(current_user.id, total, latest_ts)
    headers = {
        "ETag": etag_value,
        "Cache-Control": "no-cache, private",
        "Vary": "If-None-Match",
    }
    if if_none_match and if_none_match.strip() == etag_value:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)
    return Response(
        content=_json_dumps({"total": int(total)}),
        media_type="application/json",
        headers=headers,
    )
