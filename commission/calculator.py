# commission/calculator.py
from decimal import Decimal
from typing import Optional, Union

from models import CommissionModel, CommissionType, EventKind
from commission.config import CommissionConfigHelper
from commission.profiles import CommissionOutcome, HouseProfile
from commission.validation import PostbackValidationHelper

ZERO = Decimal("0.00")
NO_COMMISSION = CommissionOutcome(type=None, value=ZERO)


class CommissionCalculator:
    """
    Pure commission rules. No I/O, no app context.

    CPA houses pay their fixed value on registration/first_deposit, RevShare
    houses pay a percentage of the amount on deposit/recurring_deposit/profit,
    Hybrid houses apply both rules independently with their own values. Every
    other combination is worth nothing.
    """

    @staticmethod
    def compute(house: HouseProfile, event_kind: Union[EventKind, str, None],
                amount: Union[Decimal, str, None] = None) -> CommissionOutcome:
        kind = event_kind if isinstance(event_kind, EventKind) else EventKind.parse(event_kind)
        if kind is None:
            return NO_COMMISSION

        model = house.model
        if model in (CommissionModel.CPA, CommissionModel.HYBRID) and kind in CommissionConfigHelper.CPA_EVENTS:
            return CommissionCalculator._cpa(house.cpa_value)

        if model in (CommissionModel.REVSHARE, CommissionModel.HYBRID) and kind in CommissionConfigHelper.REVSHARE_EVENTS:
            return CommissionCalculator._revshare(house.revshare_value, amount)

        return NO_COMMISSION

    @staticmethod
    def _cpa(cpa_value: Optional[Decimal]) -> CommissionOutcome:
        if cpa_value is None:
            return NO_COMMISSION
        value = PostbackValidationHelper.quantize(Decimal(cpa_value))
        if value <= 0:
            return NO_COMMISSION
        return CommissionOutcome(type=CommissionType.CPA, value=value)

    @staticmethod
    def _revshare(percentage: Optional[Decimal], amount) -> CommissionOutcome:
        parsed = PostbackValidationHelper.parse_amount(amount)
        if parsed is None or percentage is None:
            return NO_COMMISSION
        value = PostbackValidationHelper.quantize(
            parsed * Decimal(percentage) / CommissionConfigHelper.PERCENT
        )
        if value <= 0:
            return NO_COMMISSION
        return CommissionOutcome(type=CommissionType.REVSHARE, value=value)
