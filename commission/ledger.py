# commission/ledger.py
import hashlib
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from extensions import db
from models import CommissionRecord, ConversionEvent, EventKind
from commission.profiles import AffiliateProfile, CommissionOutcome, HouseProfile, NormalizedParams


class CommissionLedger:
    """
    Append-only store of conversion events and their commissions.

    Writes only add + flush; the caller owns the transaction so that the
    event, the commission and the audit row commit (or roll back) together.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    @staticmethod
    def make_idempotency_key(house_id: int, event_kind: str, customer_id: Optional[str],
                             amount: Optional[Decimal], subid: str) -> str:
        amount_part = f"{amount:.2f}" if amount is not None else ""
        raw = f"{house_id}|{event_kind}|{customer_id or ''}|{amount_part}|{subid}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    @staticmethod
    def dedup_bucket(window_seconds: int, now: Optional[float] = None) -> Optional[int]:
        """Window-sized time slot; two identical postbacks in one slot violate uq_event_idempotency_bucket."""
        if window_seconds <= 0:
            return None
        return int((time.time() if now is None else now) // window_seconds)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def record_event(self, house: HouseProfile, affiliate: AffiliateProfile, event_kind: EventKind,
                     params: NormalizedParams, link_id: Optional[int] = None,
                     idempotency_key: Optional[str] = None, dedup_bucket: Optional[int] = None) -> ConversionEvent:
        event = ConversionEvent(
            affiliate_id=affiliate.id,
            house_id=house.id,
            affiliate_link_id=link_id,
            event_kind=event_kind.value,
            amount=params.amount,
            customer_id=params.customer_id,
            extra_params=dict(params.extra),
            idempotency_key=idempotency_key or self.make_idempotency_key(
                house.id, event_kind.value, params.customer_id, params.amount, affiliate.tracking_code
            ),
            dedup_bucket=dedup_bucket,
        )
        self.session.add(event)
        self.session.flush()
        return event

    def record_commission(self, event: ConversionEvent, outcome: CommissionOutcome) -> Optional[CommissionRecord]:
        if not outcome.is_payable:
            return None
        record = CommissionRecord(
            event_id=event.id,
            affiliate_id=event.affiliate_id,
            house_id=event.house_id,
            commission_type=outcome.type.value,
            value=outcome.value,
        )
        self.session.add(record)
        self.session.flush()
        return record

    def find_duplicate(self, idempotency_key: str, window_seconds: int) -> Optional[ConversionEvent]:
        if window_seconds <= 0:
            return None
        since = datetime.now(timezone.utc) - timedelta(seconds=window_seconds)
        return (
            self.session.query(ConversionEvent)
            .filter(ConversionEvent.idempotency_key == idempotency_key,
                    ConversionEvent.created_at >= since)
            .order_by(ConversionEvent.id.desc())
            .first()
        )

    # ------------------------------------------------------------------
    # Range queries for reporting / payout collaborators
    # ------------------------------------------------------------------
    @staticmethod
    def _in_range(query, column, start: Optional[datetime], end: Optional[datetime]):
        if start is not None:
            query = query.filter(column >= start)
        if end is not None:
            query = query.filter(column < end)
        return query

    def events_for_affiliate(self, affiliate_id: int, start: Optional[datetime] = None,
                             end: Optional[datetime] = None, limit: Optional[int] = None) -> List[ConversionEvent]:
        query = self.session.query(ConversionEvent).filter(ConversionEvent.affiliate_id == affiliate_id)
        query = self._in_range(query, ConversionEvent.created_at, start, end)
        query = query.order_by(ConversionEvent.created_at.desc(), ConversionEvent.id.desc())
        return query.limit(limit).all() if limit else query.all()

    def events_for_house(self, house_id: int, start: Optional[datetime] = None,
                         end: Optional[datetime] = None, limit: Optional[int] = None) -> List[ConversionEvent]:
        query = self.session.query(ConversionEvent).filter(ConversionEvent.house_id == house_id)
        query = self._in_range(query, ConversionEvent.created_at, start, end)
        query = query.order_by(ConversionEvent.created_at.desc(), ConversionEvent.id.desc())
        return query.limit(limit).all() if limit else query.all()

    def commissions_for_affiliate(self, affiliate_id: int, start: Optional[datetime] = None,
                                  end: Optional[datetime] = None) -> List[CommissionRecord]:
        query = self.session.query(CommissionRecord).filter(CommissionRecord.affiliate_id == affiliate_id)
        query = self._in_range(query, CommissionRecord.created_at, start, end)
        return query.order_by(CommissionRecord.created_at.desc(), CommissionRecord.id.desc()).all()

    def commissions_for_house(self, house_id: int, start: Optional[datetime] = None,
                              end: Optional[datetime] = None) -> List[CommissionRecord]:
        query = self.session.query(CommissionRecord).filter(CommissionRecord.house_id == house_id)
        query = self._in_range(query, CommissionRecord.created_at, start, end)
        return query.order_by(CommissionRecord.created_at.desc(), CommissionRecord.id.desc()).all()

    def affiliate_summary(self, affiliate_id: int, start: Optional[datetime] = None,
                          end: Optional[datetime] = None) -> Dict[str, Any]:
        """Event counts per kind, commission and volume totals for one affiliate."""
        counts_query = (
            self.session.query(ConversionEvent.event_kind, func.count(ConversionEvent.id))
            .filter(ConversionEvent.affiliate_id == affiliate_id)
        )
        counts_query = self._in_range(counts_query, ConversionEvent.created_at, start, end)
        counts = {kind.value: 0 for kind in EventKind}
        for kind, total in counts_query.group_by(ConversionEvent.event_kind).all():
            counts[kind] = total

        volume_query = self.session.query(func.coalesce(func.sum(ConversionEvent.amount), 0)).filter(
            ConversionEvent.affiliate_id == affiliate_id
        )
        volume = self._in_range(volume_query, ConversionEvent.created_at, start, end).scalar()

        commission_query = self.session.query(func.coalesce(func.sum(CommissionRecord.value), 0)).filter(
            CommissionRecord.affiliate_id == affiliate_id
        )
        commission = self._in_range(commission_query, CommissionRecord.created_at, start, end).scalar()

        clicks = counts[EventKind.CLICK.value]
        registrations = counts[EventKind.REGISTRATION.value]
        conversion_rate = (Decimal(registrations) / Decimal(clicks) * 100) if clicks else Decimal("0")

        return {
            "affiliateId": affiliate_id,
            "events": counts,
            "totalDeposits": sum(counts[k.value] for k in (
                EventKind.FIRST_DEPOSIT, EventKind.DEPOSIT, EventKind.RECURRING_DEPOSIT
            )),
            "totalCommission": Decimal(str(commission)).quantize(Decimal("0.01")),
            "totalVolume": Decimal(str(volume)).quantize(Decimal("0.01")),
            "conversionRate": conversion_rate.quantize(Decimal("0.01")),
        }
