from decimal import Decimal

import pytest

from commission.errors import HouseConfigurationError
from commission.validation import HouseSettingsValidator, PostbackValidationHelper
from models import CommissionModel, EventKind


class TestParseAmount:
    @pytest.mark.parametrize("raw,expected", [
        ("250.00", Decimal("250.00")),
        ("250", Decimal("250")),
        ("250,50", Decimal("250.50")),
        (" 10.5 ", Decimal("10.5")),
        ("0", Decimal("0")),
        (Decimal("12.34"), Decimal("12.34")),
    ])
    def test_valid(self, raw, expected):
        assert PostbackValidationHelper.parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "12abc", "-1", "NaN", "inf", "1e12", "1e2",
                                     "1_000", "+5", "\u0661\u0662\u0663", "\uff11\uff10", "1,000.50", "5."])
    def test_invalid_is_absent(self, raw):
        assert PostbackValidationHelper.parse_amount(raw) is None


def test_quantize_rounds_half_up():
    assert PostbackValidationHelper.quantize(Decimal("1.005")) == Decimal("1.01")
    assert PostbackValidationHelper.quantize(Decimal("1.004")) == Decimal("1.00")


class TestNormalizeParams:
    def test_canonical_names_without_mapping(self):
        params = PostbackValidationHelper.normalize_params(
            {}, {"subid": "joao123", "amount": "100.00", "customer_id": "c-1"}
        )
        assert params.subid == "joao123"
        assert params.amount == Decimal("100.00")
        assert params.customer_id == "c-1"
        assert params.extra == {}

    def test_house_specific_names(self):
        mapping = {"subid": "aff_sub", "amount": "value", "customer_id": "player"}
        params = PostbackValidationHelper.normalize_params(
            mapping, {"aff_sub": "maria", "value": "75,00", "player": "p9", "campaign": "summer"}
        )
        assert params.subid == "maria"
        assert params.amount == Decimal("75.00")
        assert params.raw_amount == "75,00"
        assert params.customer_id == "p9"
        assert params.extra == {"campaign": "summer"}

    def test_mapped_name_replaces_canonical_one(self):
        params = PostbackValidationHelper.normalize_params({"subid": "aff_sub"}, {"subid": "ignored"})
        assert params.subid is None
        assert params.extra == {"subid": "ignored"}

    def test_blank_values_are_missing(self):
        params = PostbackValidationHelper.normalize_params({}, {"subid": "  ", "amount": ""})
        assert params.subid is None
        assert params.amount is None
        assert params.raw_amount is None

    def test_unparseable_amount_keeps_raw_value(self):
        params = PostbackValidationHelper.normalize_params({}, {"subid": "x", "amount": "lots"})
        assert params.amount is None
        assert params.raw_amount == "lots"


class TestHouseSettings:
    @pytest.mark.parametrize("raw", ["cpa", "CPA", " revshare ", "HYBRID"])
    def test_model_is_case_insensitive(self, raw):
        assert isinstance(HouseSettingsValidator.parse_model(raw), CommissionModel)

    def test_unknown_model(self):
        with pytest.raises(HouseConfigurationError):
            HouseSettingsValidator.parse_model("CPL")

    def test_commission_value_accepts_currency_and_percent_signs(self):
        assert HouseSettingsValidator.parse_commission_value("R$ 50,00", "commission_value") == Decimal("50.00")
        assert HouseSettingsValidator.parse_commission_value("20%", "commission_value", percent=True) == Decimal("20.00")

    @pytest.mark.parametrize("raw", [None, "", "abc", "-5"])
    def test_commission_value_rejects(self, raw):
        with pytest.raises(HouseConfigurationError):
            HouseSettingsValidator.parse_commission_value(raw, "commission_value")

    def test_percentage_capped_at_100(self):
        with pytest.raises(HouseConfigurationError):
            HouseSettingsValidator.parse_commission_value("150", "revshare_value", percent=True)

    def test_hybrid_requires_both_values(self):
        with pytest.raises(HouseConfigurationError):
            HouseSettingsValidator.commission_values(CommissionModel.HYBRID, cpa_value="30")
        flat, cpa, revshare = HouseSettingsValidator.commission_values(
            CommissionModel.HYBRID, cpa_value="30", revshare_value="25"
        )
        assert flat is None
        assert (cpa, revshare) == (Decimal("30.00"), Decimal("25.00"))

    def test_enabled_events_deduplicated(self):
        assert HouseSettingsValidator.enabled_events(
            ["registration", EventKind.REGISTRATION, "deposit"]
        ) == ["registration", "deposit"]
        assert HouseSettingsValidator.enabled_events(None) == []

    def test_unknown_event_rejected(self):
        with pytest.raises(HouseConfigurationError):
            HouseSettingsValidator.enabled_events(["signup"])

    def test_parameter_mapping_merges_defaults(self):
        assert HouseSettingsValidator.parameter_mapping({"subid": "aff_sub"}) == {
            "subid": "aff_sub",
            "amount": "amount",
            "customer_id": "customer_id",
        }

    def test_parameter_mapping_rejects_unknown_key(self):
        with pytest.raises(HouseConfigurationError):
            HouseSettingsValidator.parameter_mapping({"campaign": "cmp"})

    def test_parameter_mapping_rejects_collisions(self):
        with pytest.raises(HouseConfigurationError):
            HouseSettingsValidator.parameter_mapping({"subid": "amount"})

    def test_base_url_needs_placeholder(self):
        with pytest.raises(HouseConfigurationError):
            HouseSettingsValidator.base_url("https://house.example.com/?ref=", "VALUE")
        assert HouseSettingsValidator.base_url(" https://h.example.com/?r=VALUE ", "VALUE") == \
            "https://h.example.com/?r=VALUE"


class TestClipParams:
    def test_small_bag_unchanged(self):
        assert PostbackValidationHelper.clip_params({"campaign": "copa", "n": 3}) == {"campaign": "copa", "n": "3"}

    def test_long_names_and_values_truncated(self):
        clipped = PostbackValidationHelper.clip_params({"n" * 100: "v" * 5000})
        assert list(clipped) == ["n" * 64]
        assert len(clipped["n" * 64]) == 512

    def test_number_of_entries_capped(self):
        clipped = PostbackValidationHelper.clip_params({f"p{i}": "x" for i in range(80)})
        assert list(clipped) == [f"p{i}" for i in range(50)]

    def test_extra_params_are_bounded(self):
        params = PostbackValidationHelper.normalize_params({}, {"subid": "joao123", "blob": "z" * 10_000})
        assert params.subid == "joao123"
        assert len(params.extra["blob"]) == 512
