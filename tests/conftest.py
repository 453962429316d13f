from decimal import Decimal

import pytest

from app import create_app
from config import TestConfig
from extensions import db as _db
from models import CommissionModel, EventKind
from commission.audit import PostbackAuditLog
from commission.ledger import CommissionLedger
from commission.profiles import HouseProfile
from commission.registry import PartnerRegistry
from commission.resolver import AffiliateResolver

ALL_EVENTS = [kind.value for kind in EventKind]


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def registry(app):
    return PartnerRegistry(_db.session)


@pytest.fixture
def resolver(app):
    return AffiliateResolver(_db.session)


@pytest.fixture
def ledger(app):
    return CommissionLedger(_db.session)


@pytest.fixture
def audit_log(app):
    return PostbackAuditLog(_db.session)


@pytest.fixture
def make_house(registry):
    def _make(identifier="bet365", model="CPA", commission_value="50.00", events=None, **kwargs):
        return registry.register_house(
            name=kwargs.pop("name", identifier.title()),
            base_url=kwargs.pop("base_url", f"https://{identifier}.example.com/?btag=VALUE"),
            commission_model=model,
            commission_value=commission_value,
            enabled_events=ALL_EVENTS if events is None else events,
            identifier=identifier,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_affiliate(resolver):
    def _make(username="joao123", **kwargs):
        return resolver.register_affiliate(username, **kwargs)
    return _make


def house_profile(model=CommissionModel.CPA, cpa_value=None, revshare_value=None, **kwargs):
    """Plain HouseProfile for tests that do not need the database."""
    return HouseProfile(
        id=kwargs.pop("id", 1),
        name=kwargs.pop("name", "Test House"),
        slug=kwargs.pop("slug", "testhouse"),
        model=model,
        security_token=kwargs.pop("security_token", "s3cr3t"),
        enabled_events=kwargs.pop("enabled_events", frozenset(EventKind)),
        parameter_mapping=kwargs.pop("parameter_mapping", {}),
        cpa_value=Decimal(cpa_value) if cpa_value is not None else None,
        revshare_value=Decimal(revshare_value) if revshare_value is not None else None,
    )
