# models.py — Flask-SQLAlchemy models for partner houses, affiliates and the postback ledger
from datetime import datetime, timezone
from decimal import Decimal
import enum
from sqlalchemy import UniqueConstraint, Index
from extensions import db

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class EventKind(enum.Enum):
    CLICK = "click"
    REGISTRATION = "registration"
    FIRST_DEPOSIT = "first_deposit"
    DEPOSIT = "deposit"
    RECURRING_DEPOSIT = "recurring_deposit"
    PROFIT = "profit"

    @classmethod
    def parse(cls, value):
        """Return the member for a raw path segment, or None when unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


class CommissionModel(enum.Enum):
    CPA = "CPA"
    REVSHARE = "RevShare"
    HYBRID = "Hybrid"


class CommissionType(enum.Enum):
    CPA = "CPA"
    REVSHARE = "RevShare"


class PostbackStatus(enum.Enum):
    SUCCESS = "SUCCESS"
    INVALID_HOUSE = "INVALID_HOUSE"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_EVENT = "INVALID_EVENT"
    INVALID_SUBID = "INVALID_SUBID"
    DUPLICATE = "DUPLICATE"
    ERROR = "ERROR"


def utcnow():
    return datetime.now(timezone.utc)


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow,
                           onupdate=utcnow)


class CreatedAtMixin:
    """Append-only rows only carry their creation time."""
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)


# ===========================================================
# PARTNER HOUSES & AFFILIATES
# ===========================================================

class PartnerHouse(db.Model, BaseMixin):
    """Betting house sending postbacks. Identifier and token never change once created."""
    __tablename__ = 'partner_houses'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    identifier = db.Column(db.String(80), unique=True, nullable=False, index=True)
    base_url = db.Column(db.String(500), nullable=False)
    commission_model = db.Column(db.String(20), nullable=False)
    commission_value = db.Column(db.Numeric(18, 2), nullable=True)
    cpa_value = db.Column(db.Numeric(18, 2), nullable=True)
    revshare_value = db.Column(db.Numeric(5, 2), nullable=True)
    security_token = db.Column(db.String(64), unique=True, nullable=False)
    enabled_postbacks = db.Column(db.JSON, nullable=False, default=list)
    parameter_mapping = db.Column(db.JSON, nullable=False, default=dict)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    links = db.relationship('AffiliateLink', back_populates='house')

    @property
    def model(self):
        return CommissionModel(self.commission_model)

    @property
    def effective_cpa_value(self):
        if self.model == CommissionModel.HYBRID:
            return self.cpa_value
        if self.model == CommissionModel.CPA:
            return self.commission_value
        return None

    @property
    def effective_revshare_value(self):
        if self.model == CommissionModel.HYBRID:
            return self.revshare_value
        if self.model == CommissionModel.REVSHARE:
            return self.commission_value
        return None

    def build_link(self, tracking_code, placeholder="VALUE"):
        return self.base_url.replace(placeholder, tracking_code)

    def to_dict(self, include_token=False):
        result = {
            "id": self.id,
            "name": self.name,
            "identifier": self.identifier,
            "baseUrl": self.base_url,
            "commissionModel": self.commission_model,
            "commissionValue": str(self.commission_value) if self.commission_value is not None else None,
            "cpaValue": str(self.cpa_value) if self.cpa_value is not None else None,
            "revshareValue": str(self.revshare_value) if self.revshare_value is not None else None,
            "enabledPostbacks": list(self.enabled_postbacks or []),
            "parameterMapping": dict(self.parameter_mapping or {}),
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if include_token:
            result["securityToken"] = self.security_token
        return result

    def __repr__(self):
        return f'<PartnerHouse {self.identifier} {self.commission_model}>'


class Affiliate(db.Model, BaseMixin):
    """Affiliate account; username doubles as the tracking code echoed back as subid."""
    __tablename__ = 'affiliates'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=True)
    full_name = db.Column(db.String(150))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    links = db.relationship('AffiliateLink', back_populates='affiliate')

    def __repr__(self):
        return f'<Affiliate {self.username}>'


class AffiliateLink(db.Model, CreatedAtMixin):
    __tablename__ = 'affiliate_links'

    id = db.Column(db.Integer, primary_key=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey('affiliates.id'), nullable=False, index=True)
    house_id = db.Column(db.Integer, db.ForeignKey('partner_houses.id'), nullable=False, index=True)
    generated_url = db.Column(db.String(600), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    affiliate = db.relationship('Affiliate', back_populates='links')
    house = db.relationship('PartnerHouse', back_populates='links')

    __table_args__ = (
        UniqueConstraint('affiliate_id', 'house_id', name='uq_affiliate_link_house'),
    )


# ===========================================================
# LEDGER: CONVERSIONS & COMMISSIONS
# ===========================================================

class ConversionEvent(db.Model, CreatedAtMixin):
    """One row per accepted postback. Never updated."""
    __tablename__ = 'conversion_events'

    id = db.Column(db.Integer, primary_key=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey('affiliates.id'), nullable=False)
    house_id = db.Column(db.Integer, db.ForeignKey('partner_houses.id'), nullable=False)
    affiliate_link_id = db.Column(db.Integer, db.ForeignKey('affiliate_links.id'), nullable=True)
    event_kind = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=True)
    customer_id = db.Column(db.String(128), nullable=True)
    extra_params = db.Column(db.JSON, nullable=False, default=dict)
    idempotency_key = db.Column(db.String(64), nullable=False, index=True)
    # dedup window bucket; NULL while suppression is off
    dedup_bucket = db.Column(db.BigInteger, nullable=True)

    affiliate = db.relationship('Affiliate')
    house = db.relationship('PartnerHouse')
    commission = db.relationship('CommissionRecord', uselist=False, back_populates='event')

    __table_args__ = (
        Index('idx_event_affiliate_created', 'affiliate_id', 'created_at'),
        Index('idx_event_house_created', 'house_id', 'created_at'),
        UniqueConstraint('idempotency_key', 'dedup_bucket', name='uq_event_idempotency_bucket'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "affiliateId": self.affiliate_id,
            "houseId": self.house_id,
            "affiliateLinkId": self.affiliate_link_id,
            "eventKind": self.event_kind,
            "amount": str(self.amount) if self.amount is not None else None,
            "customerId": self.customer_id,
            "extra": dict(self.extra_params or {}),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class CommissionRecord(db.Model, CreatedAtMixin):
    """Commission derived from a ConversionEvent; only written for values above zero."""
    __tablename__ = 'commission_records'

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey('conversion_events.id'), nullable=False, unique=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey('affiliates.id'), nullable=False)
    house_id = db.Column(db.Integer, db.ForeignKey('partner_houses.id'), nullable=False)
    commission_type = db.Column(db.String(20), nullable=False)
    value = db.Column(db.Numeric(18, 2), nullable=False)

    # owned by the payout process
    is_paid = db.Column(db.Boolean, default=False, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    event = db.relationship('ConversionEvent', back_populates='commission')

    __table_args__ = (
        db.CheckConstraint('value > 0', name='chk_commission_positive'),
        Index('idx_commission_affiliate_created', 'affiliate_id', 'created_at'),
        Index('idx_commission_house_created', 'house_id', 'created_at'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "eventId": self.event_id,
            "affiliateId": self.affiliate_id,
            "houseId": self.house_id,
            "type": self.commission_type,
            "value": str(self.value),
            "isPaid": self.is_paid,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


# ===========================================================
# AUDITING
# ===========================================================

class PostbackAuditEntry(db.Model, CreatedAtMixin):
    """Every inbound postback attempt, accepted or not. Written once."""
    __tablename__ = 'postback_audit_log'

    id = db.Column(db.Integer, primary_key=True)
    house_slug = db.Column(db.String(120), nullable=False, index=True)
    event_kind = db.Column(db.String(64), nullable=False)
    subid = db.Column(db.String(255), nullable=True, index=True)
    raw_params = db.Column(db.JSON, nullable=False, default=dict)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, index=True)
    error = db.Column(db.String(255))
    commission = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    event_id = db.Column(db.Integer, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "house": self.house_slug,
            "event": self.event_kind,
            "subid": self.subid,
            "raw": dict(self.raw_params or {}),
            "ip": self.ip_address,
            "userAgent": self.user_agent,
            "status": self.status,
            "error": self.error,
            "commission": str(self.commission) if self.commission is not None else "0.00",
            "eventId": self.event_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
