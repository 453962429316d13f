from flask import Blueprint, current_app, jsonify, request

from commission.audit import PostbackAuditLog
from commission.ledger import CommissionLedger
from commission.pipeline import PostbackProcessor
from commission.profiles import PostbackRequest
from commission.registry import PartnerRegistry
from commission.resolver import AffiliateResolver
from extensions import db

bp = Blueprint('postback', __name__)


def build_processor():
    """Wire the pipeline against the request-scoped SQLAlchemy session."""
    session = db.session
    return PostbackProcessor(
        registry=PartnerRegistry(session, placeholder=current_app.config.get("AFFILIATE_LINK_PLACEHOLDER", "VALUE")),
        resolver=AffiliateResolver(session),
        ledger=CommissionLedger(session),
        audit_log=PostbackAuditLog(session),
        session=session,
        dedup_window_seconds=current_app.config.get("POSTBACK_DEDUP_WINDOW_SECONDS", 0),
    )


def client_ip():
    # X-Forwarded-For is resolved by ProxyFix in the factory, only for trusted hops
    return request.remote_addr or "unknown"


def collect_params():
    """Query string first, then form or JSON body on POST. Values are kept as strings."""
    params = request.args.to_dict(flat=True)

    if request.method == "POST":
        body = {}
        if request.is_json:
            payload = request.get_json(silent=True)
            if isinstance(payload, dict):
                body = {
                    str(key): "" if value is None else str(value)
                    for key, value in payload.items()
                    if not isinstance(value, (dict, list))
                }
        elif request.form:
            body = request.form.to_dict(flat=True)
        for key, value in body.items():
            params.setdefault(key, value)

    return params


@bp.route('/postback/<house_slug>/<event_kind>/<token>', methods=['GET', 'POST'])
def receive_postback(house_slug, event_kind, token):
    """
    Partner webhook:
    GET /postback/{houseSlug}/{eventKind}/{securityToken}?subid=...&amount=...&customer_id=...
    """
    postback = PostbackRequest(
        house_slug=house_slug,
        event_kind=event_kind,
        token=token,
        params=collect_params(),
        ip_address=client_ip(),
        user_agent=request.headers.get("User-Agent"),
    )

    result = build_processor().process(postback)
    return jsonify(result.body), result.http_status
