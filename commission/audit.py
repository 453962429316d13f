# commission/audit.py
from decimal import Decimal
from typing import List, Optional

from extensions import db
from models import PostbackAuditEntry, PostbackStatus
from commission.config import CommissionConfigHelper
from commission.profiles import PostbackRequest
from commission.validation import PostbackValidationHelper


def _clip(value: Optional[str], length: int) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value[:length]


class PostbackAuditLog:
    """One row per inbound postback, whatever the outcome."""

    def __init__(self, session=None):
        self.session = session or db.session

    def record(self, request: PostbackRequest, status: PostbackStatus, subid: Optional[str] = None,
               error: Optional[str] = None, commission: Decimal = Decimal("0.00"),
               event_id: Optional[int] = None) -> PostbackAuditEntry:
        if subid is None:
            subid = request.params.get("subid")

        entry = PostbackAuditEntry(
            house_slug=_clip(request.house_slug or "unknown", CommissionConfigHelper.MAX_SLUG_LENGTH),
            event_kind=_clip(request.event_kind or "unknown", CommissionConfigHelper.MAX_EVENT_LENGTH),
            subid=_clip(subid, CommissionConfigHelper.MAX_SUBID_LENGTH),
            raw_params=PostbackValidationHelper.clip_params(request.params),
            ip_address=_clip(request.ip_address, 64),
            user_agent=_clip(request.user_agent, CommissionConfigHelper.MAX_USER_AGENT_LENGTH),
            status=status.value,
            error=_clip(error, 255),
            commission=commission,
            event_id=event_id,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def search(self, status: Optional[str] = None, house_slug: Optional[str] = None,
               subid: Optional[str] = None, limit: int = 100) -> List[PostbackAuditEntry]:
        query = self.session.query(PostbackAuditEntry)
        if status and status != "all":
            query = query.filter(PostbackAuditEntry.status == status)
        if house_slug:
            query = query.filter(PostbackAuditEntry.house_slug == house_slug)
        if subid:
            query = query.filter(PostbackAuditEntry.subid == subid)
        return (
            query.order_by(PostbackAuditEntry.created_at.desc(), PostbackAuditEntry.id.desc())
            .limit(limit)
            .all()
        )
