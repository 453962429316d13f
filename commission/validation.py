# commission/validation.py
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from models import CommissionModel, EventKind
from commission.config import CommissionConfigHelper
from commission.errors import HouseConfigurationError
from commission.profiles import NormalizedParams

# ASCII digits, optional dot or comma fraction
AMOUNT_PATTERN = re.compile(r"^[0-9]+([.,][0-9]+)?$")


class PostbackValidationHelper:
    """Parsing and normalisation of untrusted partner input."""

    @staticmethod
    def parse_amount(raw) -> Optional[Decimal]:
        """
        Parse an inbound amount. Anything that is not a finite, non-negative
        decimal comes back as None so the caller can treat it as absent.
        Accepts "250.00", "250" and the comma-decimal "250,00".
        """
        if raw is None:
            return None
        if isinstance(raw, Decimal):
            value = raw
        else:
            text = str(raw).strip()
            if not AMOUNT_PATTERN.match(text):
                return None
            text = text.replace(",", ".")
            try:
                value = Decimal(text)
            except (InvalidOperation, ValueError):
                return None

        if not value.is_finite() or value < 0 or value > CommissionConfigHelper.MAX_AMOUNT:
            return None
        return value

    @staticmethod
    def quantize(value: Decimal) -> Decimal:
        return value.quantize(CommissionConfigHelper.CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)

    @staticmethod
    def clip_params(params: Mapping[str, str]) -> Dict[str, str]:
        """Bound a parameter bag before it is stored: first N names, names and values truncated."""
        clipped = {}
        for key, value in params.items():
            if len(clipped) >= CommissionConfigHelper.MAX_STORED_PARAMS:
                break
            name = str(key)[:CommissionConfigHelper.MAX_PARAM_NAME_LENGTH]
            clipped[name] = str(value)[:CommissionConfigHelper.MAX_PARAM_VALUE_LENGTH]
        return clipped

    @staticmethod
    def normalize_params(mapping: Mapping[str, str], params: Mapping[str, str]) -> NormalizedParams:
        """
        Rename the house's own parameter names to the canonical ones.
        Unmapped canonical names fall back to themselves; whatever is left
        over ends up in ``extra``.
        """
        mapping = mapping or {}
        consumed = set()

        def pick(canonical):
            source = mapping.get(canonical) or canonical
            consumed.add(source)
            value = params.get(source)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        subid = pick("subid")
        raw_amount = pick("amount")
        customer_id = pick("customer_id")
        if customer_id:
            customer_id = customer_id[:CommissionConfigHelper.MAX_CUSTOMER_ID_LENGTH]

        extra = PostbackValidationHelper.clip_params(
            {key: value for key, value in params.items() if key not in consumed}
        )

        return NormalizedParams(
            subid=subid,
            amount=PostbackValidationHelper.parse_amount(raw_amount),
            raw_amount=raw_amount,
            customer_id=customer_id,
            extra=extra,
        )


class HouseSettingsValidator:
    """Validation applied once, when a partner house is registered."""

    @staticmethod
    def parse_commission_value(raw, field_name: str, percent: bool = False) -> Decimal:
        if raw is None or str(raw).strip() == "":
            raise HouseConfigurationError(f"{field_name} is required for this commission model")
        text = str(raw).strip().replace("R$", "").replace("%", "").strip()
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        try:
            value = Decimal(text)
        except (InvalidOperation, ValueError):
            raise HouseConfigurationError(f"{field_name} must be a decimal number, got {raw!r}")
        if not value.is_finite() or value < 0:
            raise HouseConfigurationError(f"{field_name} must be a non-negative number, got {raw!r}")
        if percent and value > CommissionConfigHelper.MAX_REVSHARE_PERCENT:
            raise HouseConfigurationError(f"{field_name} cannot exceed 100%")
        return PostbackValidationHelper.quantize(value)

    @staticmethod
    def parse_model(raw) -> CommissionModel:
        if isinstance(raw, CommissionModel):
            return raw
        for model in CommissionModel:
            if str(raw).strip().lower() == model.value.lower():
                return model
        raise HouseConfigurationError(
            f"Unknown commission model {raw!r}; expected one of "
            f"{', '.join(m.value for m in CommissionModel)}"
        )

    @staticmethod
    def commission_values(model: CommissionModel, commission_value=None, cpa_value=None,
                          revshare_value=None) -> Tuple[Optional[Decimal], Optional[Decimal], Optional[Decimal]]:
        """Return (commission_value, cpa_value, revshare_value) as they should be stored."""
        parse = HouseSettingsValidator.parse_commission_value
        if model == CommissionModel.CPA:
            return parse(commission_value, "commission_value"), None, None
        if model == CommissionModel.REVSHARE:
            return parse(commission_value, "commission_value", percent=True), None, None
        return (
            None,
            parse(cpa_value, "cpa_value"),
            parse(revshare_value, "revshare_value", percent=True),
        )

    @staticmethod
    def enabled_events(raw: Optional[Iterable]) -> List[str]:
        kinds = []
        for item in raw or []:
            kind = item if isinstance(item, EventKind) else EventKind.parse(str(item).strip())
            if kind is None:
                raise HouseConfigurationError(f"Unknown event kind {item!r}")
            if kind.value not in kinds:
                kinds.append(kind.value)
        return kinds

    @staticmethod
    def parameter_mapping(raw: Optional[Mapping[str, str]]) -> Dict[str, str]:
        mapping = dict(CommissionConfigHelper.DEFAULT_PARAMETER_MAPPING)
        for canonical, house_name in (raw or {}).items():
            if canonical not in CommissionConfigHelper.CANONICAL_PARAMS:
                raise HouseConfigurationError(
                    f"Parameter mapping key {canonical!r} is not one of "
                    f"{', '.join(CommissionConfigHelper.CANONICAL_PARAMS)}"
                )
            house_name = str(house_name or "").strip()
            if not house_name:
                raise HouseConfigurationError(f"Parameter mapping for {canonical!r} is empty")
            mapping[canonical] = house_name

        if len(set(mapping.values())) != len(mapping):
            raise HouseConfigurationError("Two canonical parameters cannot share one house parameter name")
        return mapping

    @staticmethod
    def base_url(raw: str, placeholder: str) -> str:
        url = (raw or "").strip()
        if not url:
            raise HouseConfigurationError("base_url is required")
        if placeholder not in url:
            raise HouseConfigurationError(f"base_url must contain the {placeholder} placeholder")
        return url
