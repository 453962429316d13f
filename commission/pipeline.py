# commission/pipeline.py
"""
Postback processing pipeline.

RECEIVED -> HOUSE_RESOLVED -> TOKEN_VALID -> PARAMS_NORMALIZED -> SUBID_RESOLVED
-> EVENT_RECORDED -> (COMMISSION_RECORDED) -> AUDITED_SUCCESS

Every validation step can short-circuit to a single audit row with the
failure reason. Ledger writes and the success audit row share one
transaction; on any exception it is rolled back and an ERROR row is written
on its own.
"""
import hmac
import time
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import EventKind, PostbackStatus
from commission.calculator import CommissionCalculator
from commission.profiles import PostbackRequest, PostbackResult
from commission.validation import PostbackValidationHelper
from logger import postback_logger as logger


REJECTIONS = {
    PostbackStatus.INVALID_HOUSE: 404,
    PostbackStatus.INVALID_TOKEN: 401,
    PostbackStatus.INVALID_EVENT: 400,
    PostbackStatus.INVALID_SUBID: 400,
}


def tokens_match(expected: str, received: str) -> bool:
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


class PostbackProcessor:

    def __init__(self, registry, resolver, ledger, audit_log, calculator=CommissionCalculator,
                 session=None, dedup_window_seconds: int = 0):
        self.registry = registry
        self.resolver = resolver
        self.ledger = ledger
        self.audit_log = audit_log
        self.calculator = calculator
        self.session = session or db.session
        self.dedup_window_seconds = dedup_window_seconds or 0

    def process(self, request: PostbackRequest) -> PostbackResult:
        started = time.monotonic()
        logger.info(
            f"📩 Postback received: house={request.house_slug} event={request.event_kind} "
            f"ip={request.ip_address} params={request.params}"
        )
        try:
            result = self._run(request)
        except Exception as e:
            result = self._fail(request, e)

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Postback {request.house_slug}/{request.event_kind} -> {result.status.value} "
            f"({result.http_status}) in {elapsed_ms:.1f}ms"
        )
        return result

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def _run(self, request: PostbackRequest) -> PostbackResult:
        house = self.registry.lookup_by_slug(request.house_slug)
        if house is None:
            return self._reject(request, PostbackStatus.INVALID_HOUSE, "Partner house not found")

        if not tokens_match(house.security_token, request.token):
            return self._reject(request, PostbackStatus.INVALID_TOKEN, "Invalid security token")

        kind = EventKind.parse(request.event_kind)
        if not house.accepts(kind):
            return self._reject(request, PostbackStatus.INVALID_EVENT,
                                "Event not enabled for this partner house")

        params = PostbackValidationHelper.normalize_params(house.parameter_mapping, request.params)
        if not params.subid:
            return self._reject(request, PostbackStatus.INVALID_SUBID, "Missing subid")

        affiliate = self.resolver.resolve_by_tracking_code(params.subid)
        if affiliate is None:
            return self._reject(request, PostbackStatus.INVALID_SUBID, "Affiliate not found",
                                subid=params.subid)

        if params.raw_amount is not None and params.amount is None:
            logger.warning(f"Unparseable amount {params.raw_amount!r} from {house.slug}, treating as absent")

        idempotency_key = self.ledger.make_idempotency_key(
            house.id, kind.value, params.customer_id, params.amount, affiliate.tracking_code
        )
        duplicate = self.ledger.find_duplicate(idempotency_key, self.dedup_window_seconds)
        if duplicate is not None:
            return self._duplicate(request, house, affiliate, kind, duplicate)

        link_id = self.resolver.link_for(affiliate.id, house.id)
        bucket = self.ledger.dedup_bucket(self.dedup_window_seconds)
        try:
            event = self.ledger.record_event(house, affiliate, kind, params, link_id=link_id,
                                             idempotency_key=idempotency_key, dedup_bucket=bucket)
        except IntegrityError:
            # a concurrent retry committed the same key in this window first
            if bucket is None:
                raise
            self.session.rollback()
            duplicate = self.ledger.find_duplicate(idempotency_key, self.dedup_window_seconds)
            if duplicate is None:
                raise
            return self._duplicate(request, house, affiliate, kind, duplicate)

        outcome = self.calculator.compute(house, kind, params.amount)
        if outcome.is_payable:
            self.ledger.record_commission(event, outcome)
            logger.info(
                f"💰 {outcome.type.value} commission {outcome.value} for {affiliate.tracking_code} "
                f"on {house.slug}/{kind.value}"
            )

        self.audit_log.record(request, PostbackStatus.SUCCESS, subid=params.subid,
                              commission=outcome.value, event_id=event.id)
        self.session.commit()

        return PostbackResult(
            status=PostbackStatus.SUCCESS,
            http_status=200,
            body={
                "success": True,
                "message": "Postback processed successfully",
                "commission": f"{outcome.value:.2f}",
                "type": outcome.type_label(),
                "affiliate": affiliate.tracking_code,
                "house": house.name,
                "event": kind.value,
                "eventId": event.id,
            },
        )

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------
    def _reject(self, request: PostbackRequest, status: PostbackStatus, message: str,
                subid=None) -> PostbackResult:
        logger.warning(f"❌ Postback rejected ({status.value}): {message} "
                       f"house={request.house_slug} event={request.event_kind}")
        self.audit_log.record(request, status, subid=subid, error=message)
        self.session.commit()
        return PostbackResult(
            status=status,
            http_status=REJECTIONS[status],
            body={"error": message, "status": status.value},
        )

    def _duplicate(self, request, house, affiliate, kind, original) -> PostbackResult:
        logger.warning(f"Duplicate postback for event {original.id} ignored "
                       f"({house.slug}/{kind.value} subid={affiliate.tracking_code})")
        self.audit_log.record(request, PostbackStatus.DUPLICATE, subid=affiliate.tracking_code,
                              error=f"Duplicate of event {original.id}", event_id=original.id)
        self.session.commit()
        return PostbackResult(
            status=PostbackStatus.DUPLICATE,
            http_status=200,
            body={
                "success": True,
                "duplicate": True,
                "message": "Duplicate postback ignored",
                "commission": "0.00",
                "type": None,
                "affiliate": affiliate.tracking_code,
                "house": house.name,
                "event": kind.value,
                "eventId": original.id,
            },
        )

    def _fail(self, request: PostbackRequest, error: Exception) -> PostbackResult:
        self.session.rollback()
        logger.error(
            f"Postback processing failed for {request.house_slug}/{request.event_kind}: {error}",
            exc_info=True,
        )
        try:
            self.audit_log.record(request, PostbackStatus.ERROR, error=str(error) or type(error).__name__,
                                  commission=Decimal("0.00"))
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Could not write ERROR audit row", exc_info=True)

        return PostbackResult(
            status=PostbackStatus.ERROR,
            http_status=500,
            body={"error": "Internal error processing postback", "status": PostbackStatus.ERROR.value},
        )
