# commission/config.py
from decimal import Decimal

from models import EventKind


class CommissionConfigHelper:
    """
    Static commission rules shared by the calculator, the registry and the receiver.
    CPA pays a fixed amount on acquisition events, RevShare pays a percentage
    of the monetary amount carried by deposit/profit events.
    """

    CPA_EVENTS = frozenset({EventKind.REGISTRATION, EventKind.FIRST_DEPOSIT})
    REVSHARE_EVENTS = frozenset({EventKind.DEPOSIT, EventKind.RECURRING_DEPOSIT, EventKind.PROFIT})

    # Canonical parameter names; a house maps each to its own query-parameter name
    CANONICAL_PARAMS = ("subid", "amount", "customer_id")
    DEFAULT_PARAMETER_MAPPING = {
        "subid": "subid",
        "amount": "amount",
        "customer_id": "customer_id",
    }

    CURRENCY_QUANTUM = Decimal("0.01")
    PERCENT = Decimal("100")
    MAX_REVSHARE_PERCENT = Decimal("100")
    MAX_AMOUNT = Decimal("1000000000")

    SECURITY_TOKEN_BYTES = 24
    LINK_PLACEHOLDER = "VALUE"

    # Raw values stored on the audit row are truncated to the column widths
    MAX_SUBID_LENGTH = 255
    MAX_USER_AGENT_LENGTH = 255
    MAX_SLUG_LENGTH = 120
    MAX_EVENT_LENGTH = 64
    MAX_CUSTOMER_ID_LENGTH = 128

    # Raw and extra parameter bags stored as JSON
    MAX_STORED_PARAMS = 50
    MAX_PARAM_NAME_LENGTH = 64
    MAX_PARAM_VALUE_LENGTH = 512
