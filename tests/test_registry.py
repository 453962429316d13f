from decimal import Decimal

import pytest

from commission.errors import AffiliateRegistrationError, HouseConfigurationError
from models import (
    Affiliate, AffiliateLink, CommissionModel, ConversionEvent, EventKind, PartnerHouse, PostbackAuditEntry,
)


class TestRegisterHouse:
    def test_cpa_house(self, make_house):
        house = make_house("bet365", model="CPA", commission_value="50.00")
        assert house.id is not None
        assert house.identifier == "bet365"
        assert house.commission_model == "CPA"
        assert house.commission_value == Decimal("50.00")
        assert house.effective_cpa_value == Decimal("50.00")
        assert house.effective_revshare_value is None
        assert house.is_active

    def test_token_is_generated(self, make_house):
        first = make_house("bet365")
        second = make_house("brazino")
        assert len(first.security_token) == 48
        assert first.security_token != second.security_token

    def test_hybrid_house_stores_both_values(self, registry):
        house = registry.register_house(
            name="Sportingbet",
            base_url="https://sb.example.com/?aff=VALUE",
            commission_model="hybrid",
            cpa_value="30",
            revshare_value="25",
            enabled_events=["registration", "deposit"],
            identifier="sportingbet",
        )
        assert house.commission_model == "Hybrid"
        assert house.effective_cpa_value == Decimal("30.00")
        assert house.effective_revshare_value == Decimal("25.00")
        assert house.enabled_postbacks == ["registration", "deposit"]

    def test_generated_identifier(self, registry):
        house = registry.register_house(
            name="Casa Nova!", base_url="https://cn.example.com/VALUE",
            commission_model="CPA", commission_value="10",
        )
        assert house.identifier.startswith("casanova")

    def test_duplicate_identifier_rejected(self, make_house):
        make_house("bet365")
        with pytest.raises(HouseConfigurationError):
            make_house("bet365")

    @pytest.mark.parametrize("identifier", ["B", "has space", "-leading", "a" * 81])
    def test_bad_identifier(self, make_house, identifier):
        with pytest.raises(HouseConfigurationError):
            make_house(identifier)

    def test_identifier_is_lowercased(self, make_house, registry):
        make_house("Bet365", base_url="https://bet.example.com/?btag=VALUE")
        assert registry.get_house("bet365") is not None

    def test_base_url_without_placeholder(self, make_house):
        with pytest.raises(HouseConfigurationError):
            make_house("bet365", base_url="https://bet.example.com/")

    def test_missing_value(self, make_house):
        with pytest.raises(HouseConfigurationError):
            make_house("bet365", commission_value=None)

    def test_nothing_persisted_on_error(self, make_house, db):
        with pytest.raises(HouseConfigurationError):
            make_house("bet365", model="RevShare", commission_value="120")
        assert db.session.query(PartnerHouse).count() == 0


class TestLookup:
    def test_profile_snapshot(self, make_house, registry):
        house = make_house("brazino", model="RevShare", commission_value="20",
                           events=["deposit"], parameter_mapping={"subid": "aff_sub"})
        profile = registry.lookup_by_slug("brazino")
        assert profile.id == house.id
        assert profile.name == "Brazino"
        assert profile.model == CommissionModel.REVSHARE
        assert profile.revshare_value == Decimal("20.00")
        assert profile.cpa_value is None
        assert profile.enabled_events == frozenset({EventKind.DEPOSIT})
        assert profile.parameter_mapping["subid"] == "aff_sub"
        assert profile.security_token == house.security_token

    def test_unknown_slug(self, registry):
        assert registry.lookup_by_slug("xyz") is None
        assert registry.lookup_by_slug("") is None

    def test_inactive_house_not_found(self, make_house, registry):
        make_house("bet365")
        assert registry.deactivate_house("bet365") is True
        assert registry.lookup_by_slug("bet365") is None
        assert registry.get_house("bet365").is_active is False

    def test_deactivate_unknown(self, registry):
        assert registry.deactivate_house("xyz") is False


class TestLinks:
    def test_link_substitutes_tracking_code(self, make_house, make_affiliate, registry, db):
        make_house("bet365", base_url="https://bet365.example.com/?btag=VALUE&lang=pt")
        affiliate = make_affiliate("joao123")
        link = registry.create_link("bet365", "joao123")
        assert link.generated_url == "https://bet365.example.com/?btag=joao123&lang=pt"
        assert link.affiliate_id == affiliate.id

    def test_link_is_idempotent(self, make_house, make_affiliate, registry, db):
        make_house("bet365")
        make_affiliate("joao123")
        first = registry.create_link("bet365", "joao123")
        second = registry.create_link("bet365", "joao123")
        assert first.id == second.id
        assert db.session.query(AffiliateLink).count() == 1

    def test_unknown_affiliate(self, make_house, registry):
        make_house("bet365")
        with pytest.raises(AffiliateRegistrationError):
            registry.create_link("bet365", "nobody")

    def test_inactive_house(self, make_house, make_affiliate, registry):
        make_house("bet365")
        make_affiliate("joao123")
        registry.deactivate_house("bet365")
        with pytest.raises(AffiliateRegistrationError):
            registry.create_link("bet365", "joao123")


class TestResolver:
    def test_resolve_tracking_code(self, make_affiliate, resolver):
        affiliate = make_affiliate("joao123")
        profile = resolver.resolve_by_tracking_code("joao123")
        assert profile.id == affiliate.id
        assert profile.tracking_code == "joao123"

    def test_tracking_code_is_case_sensitive(self, make_affiliate, resolver):
        make_affiliate("joao123")
        assert resolver.resolve_by_tracking_code("JOAO123") is None

    @pytest.mark.parametrize("code", [None, "", "ghost", "x" * 300])
    def test_unresolvable(self, resolver, code):
        assert resolver.resolve_by_tracking_code(code) is None

    def test_inactive_affiliate(self, make_affiliate, resolver, db):
        affiliate = make_affiliate("joao123")
        affiliate.is_active = False
        db.session.commit()
        assert resolver.resolve_by_tracking_code("joao123") is None

    def test_link_for(self, make_house, make_affiliate, registry, resolver):
        house = make_house("bet365")
        affiliate = make_affiliate("joao123")
        assert resolver.link_for(affiliate.id, house.id) is None
        link = registry.create_link("bet365", "joao123")
        assert resolver.link_for(affiliate.id, house.id) == link.id

    def test_register_affiliate_rejects_duplicates(self, make_affiliate, db):
        make_affiliate("joao123", email="joao@example.com")
        with pytest.raises(AffiliateRegistrationError):
            make_affiliate("joao123")
        assert db.session.query(Affiliate).count() == 1

    def test_register_affiliate_requires_username(self, make_affiliate):
        with pytest.raises(AffiliateRegistrationError):
            make_affiliate("  ")


class TestRepeatedLookups:
    def counts(self, db):
        return (
            db.session.query(PostbackAuditEntry).count(),
            db.session.query(ConversionEvent).count(),
            db.session.query(PartnerHouse).count(),
            db.session.query(Affiliate).count(),
        )

    def test_same_key_same_result_and_no_writes(self, make_house, make_affiliate, registry, resolver, db):
        make_house("bet365", parameter_mapping={"subid": "btag"})
        make_affiliate("joao123")
        before = self.counts(db)

        first_house, second_house = registry.lookup_by_slug("bet365"), registry.lookup_by_slug("bet365")
        first_aff, second_aff = (resolver.resolve_by_tracking_code("joao123"),
                                 resolver.resolve_by_tracking_code("joao123"))

        assert first_house is not None and first_house == second_house
        assert first_aff is not None and first_aff == second_aff
        assert self.counts(db) == before
        assert not db.session.new and not db.session.dirty

    def test_unknown_keys_stay_unknown(self, registry, resolver, db):
        before = self.counts(db)
        assert registry.lookup_by_slug("xyz") is None
        assert registry.lookup_by_slug("xyz") is None
        assert resolver.resolve_by_tracking_code("ghost") is None
        assert resolver.resolve_by_tracking_code("ghost") is None
        assert self.counts(db) == before
