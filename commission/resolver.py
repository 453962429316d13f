# commission/resolver.py
from typing import Optional

from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Affiliate, AffiliateLink
from commission.config import CommissionConfigHelper
from commission.errors import AffiliateRegistrationError
from commission.profiles import AffiliateProfile
from logger import postback_logger as logger


class AffiliateResolver:
    """Tracking code (subid) -> affiliate. Read-only during a postback."""

    def __init__(self, session=None):
        self.session = session or db.session

    def resolve_by_tracking_code(self, code: Optional[str]) -> Optional[AffiliateProfile]:
        if not code or len(code) > CommissionConfigHelper.MAX_SUBID_LENGTH:
            return None
        affiliate = self.session.query(Affiliate).filter_by(username=code, is_active=True).first()
        if affiliate is None:
            logger.warning(f"Unknown or inactive tracking code: {code!r}")
            return None
        return AffiliateProfile(id=affiliate.id, tracking_code=affiliate.username)

    def link_for(self, affiliate_id: int, house_id: int) -> Optional[int]:
        link = self.session.query(AffiliateLink.id).filter_by(
            affiliate_id=affiliate_id, house_id=house_id, is_active=True
        ).first()
        return link[0] if link else None

    def register_affiliate(self, username: str, email: Optional[str] = None,
                           full_name: Optional[str] = None) -> Affiliate:
        username = (username or "").strip()
        if not username:
            raise AffiliateRegistrationError("username is required")
        if len(username) > 80:
            raise AffiliateRegistrationError("username cannot exceed 80 characters")
        if self.session.query(Affiliate).filter_by(username=username).first():
            raise AffiliateRegistrationError(f"Tracking code {username!r} is already taken")

        affiliate = Affiliate(username=username, email=email, full_name=full_name, is_active=True)
        try:
            self.session.add(affiliate)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise AffiliateRegistrationError(f"Could not register affiliate {username!r}: {e.orig}")

        logger.info(f"Registered affiliate {username}")
        return affiliate
