# commission/registry.py
import re
import secrets
import time
from typing import Iterable, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Affiliate, AffiliateLink, EventKind, PartnerHouse
from commission.config import CommissionConfigHelper
from commission.errors import AffiliateRegistrationError, HouseConfigurationError
from commission.profiles import HouseProfile
from commission.validation import HouseSettingsValidator
from logger import postback_logger as logger

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{1,79}$")


class PartnerRegistry:
    """
    Read side: slug -> HouseProfile for the postback pipeline.
    Write side: the handful of admin operations the CLI needs (register,
    deactivate, build affiliate links). Identifier and token are generated
    here and never touched again.
    """

    def __init__(self, session=None, placeholder: str = CommissionConfigHelper.LINK_PLACEHOLDER):
        self.session = session or db.session
        self.placeholder = placeholder

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def lookup_by_slug(self, slug: str) -> Optional[HouseProfile]:
        if not slug:
            return None
        house = self.session.query(PartnerHouse).filter_by(identifier=slug, is_active=True).first()
        if house is None:
            logger.warning(f"Partner house not registered or inactive: {slug!r}")
            return None
        return self.to_profile(house)

    def get_house(self, slug: str) -> Optional[PartnerHouse]:
        return self.session.query(PartnerHouse).filter_by(identifier=slug).first()

    @staticmethod
    def to_profile(house: PartnerHouse) -> HouseProfile:
        enabled = frozenset(
            kind for kind in (EventKind.parse(value) for value in (house.enabled_postbacks or []))
            if kind is not None
        )
        return HouseProfile(
            id=house.id,
            name=house.name,
            slug=house.identifier,
            model=house.model,
            security_token=house.security_token,
            enabled_events=enabled,
            parameter_mapping=dict(house.parameter_mapping or CommissionConfigHelper.DEFAULT_PARAMETER_MAPPING),
            cpa_value=house.effective_cpa_value,
            revshare_value=house.effective_revshare_value,
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    def register_house(self, name: str, base_url: str, commission_model, commission_value=None,
                       cpa_value=None, revshare_value=None, enabled_events: Optional[Iterable] = None,
                       parameter_mapping: Optional[Mapping[str, str]] = None,
                       identifier: Optional[str] = None, description: Optional[str] = None) -> PartnerHouse:
        name = (name or "").strip()
        if not name:
            raise HouseConfigurationError("name is required")

        model = HouseSettingsValidator.parse_model(commission_model)
        flat, cpa, revshare = HouseSettingsValidator.commission_values(
            model, commission_value=commission_value, cpa_value=cpa_value, revshare_value=revshare_value
        )

        if identifier:
            identifier = identifier.strip().lower()
            if not SLUG_PATTERN.match(identifier):
                raise HouseConfigurationError(
                    f"Identifier {identifier!r} must be 2-80 lowercase letters, digits, '-' or '_'"
                )
            if self.get_house(identifier):
                raise HouseConfigurationError(f"Identifier {identifier!r} is already in use")
        else:
            identifier = self._generate_identifier(name)

        house = PartnerHouse(
            name=name,
            description=description,
            identifier=identifier,
            base_url=HouseSettingsValidator.base_url(base_url, self.placeholder),
            commission_model=model.value,
            commission_value=flat,
            cpa_value=cpa,
            revshare_value=revshare,
            security_token=self._generate_token(),
            enabled_postbacks=HouseSettingsValidator.enabled_events(enabled_events),
            parameter_mapping=HouseSettingsValidator.parameter_mapping(parameter_mapping),
            is_active=True,
        )

        try:
            self.session.add(house)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise HouseConfigurationError(f"Could not register house {identifier!r}: {e.orig}")

        logger.info(f"🏠 Registered partner house {house.identifier} ({model.value})")
        return house

    def deactivate_house(self, slug: str) -> bool:
        house = self.get_house(slug)
        if house is None:
            return False
        house.is_active = False
        self.session.commit()
        logger.info(f"Partner house {slug} deactivated")
        return True

    def create_link(self, house_slug: str, tracking_code: str) -> AffiliateLink:
        """Build (or return the existing) outbound link for an affiliate on a house."""
        house = self.get_house(house_slug)
        if house is None or not house.is_active:
            raise AffiliateRegistrationError(f"Partner house {house_slug!r} not found or inactive")

        affiliate = self.session.query(Affiliate).filter_by(username=tracking_code).first()
        if affiliate is None:
            raise AffiliateRegistrationError(f"Affiliate {tracking_code!r} not found")

        existing = self.session.query(AffiliateLink).filter_by(
            affiliate_id=affiliate.id, house_id=house.id
        ).first()
        if existing:
            return existing

        link = AffiliateLink(
            affiliate_id=affiliate.id,
            house_id=house.id,
            generated_url=house.build_link(affiliate.username, self.placeholder),
            is_active=True,
        )
        try:
            self.session.add(link)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise AffiliateRegistrationError(f"Could not create link: {e.orig}")

        logger.info(f"🔗 Link created for {affiliate.username} on {house.identifier}")
        return link

    # ------------------------------------------------------------------
    # Generators
    # ------------------------------------------------------------------
    def _generate_identifier(self, name: str) -> str:
        base = re.sub(r"[^a-z0-9]", "", name.lower())[:60] or "house"
        for _ in range(10):
            candidate = f"{base}{int(time.time() * 1000) % 10**8}{secrets.randbelow(100):02d}"
            if not self.get_house(candidate):
                return candidate
        raise HouseConfigurationError(f"Could not generate a unique identifier for {name!r}")

    def _generate_token(self) -> str:
        for _ in range(10):
            token = secrets.token_hex(CommissionConfigHelper.SECURITY_TOKEN_BYTES)
            if not self.session.query(PartnerHouse).filter_by(security_token=token).first():
                return token
        raise HouseConfigurationError("Could not generate a unique security token")
