# commission/profiles.py
"""Immutable snapshots handed through the postback pipeline.

The pipeline never touches ORM rows directly: the registry and resolver turn
rows into these values, which keeps the pipeline testable with plain fakes.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from models import CommissionModel, CommissionType, EventKind, PostbackStatus


@dataclass(frozen=True)
class HouseProfile:
    id: int
    name: str
    slug: str
    model: CommissionModel
    security_token: str
    enabled_events: FrozenSet[EventKind] = frozenset()
    parameter_mapping: Dict[str, str] = field(default_factory=dict)
    cpa_value: Optional[Decimal] = None
    revshare_value: Optional[Decimal] = None

    def accepts(self, kind: Optional[EventKind]) -> bool:
        return kind is not None and kind in self.enabled_events


@dataclass(frozen=True)
class AffiliateProfile:
    id: int
    tracking_code: str


@dataclass(frozen=True)
class CommissionOutcome:
    type: Optional[CommissionType]
    value: Decimal

    @property
    def is_payable(self) -> bool:
        return self.type is not None and self.value > 0

    def type_label(self) -> Optional[str]:
        return self.type.value if self.type else None


@dataclass(frozen=True)
class NormalizedParams:
    subid: Optional[str]
    amount: Optional[Decimal]
    raw_amount: Optional[str]
    customer_id: Optional[str]
    extra: Dict[str, str] = field(default_factory=dict)


@dataclass
class PostbackRequest:
    """Everything the receiver extracted from one inbound HTTP call."""
    house_slug: str
    event_kind: str
    token: str
    params: Dict[str, str] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class PostbackResult:
    status: PostbackStatus
    http_status: int
    body: Dict[str, object]
