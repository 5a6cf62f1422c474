from decimal import Decimal

import pytest

from legacyalloc.models import Asset
from legacyalloc.rules import DEFAULT_RULES, AllocationRules, default_percentage


def test_default_percentage_follows_beneficiary_count():
    assert default_percentage(0) == 0.0
    assert default_percentage(1) == 100.0
    assert default_percentage(2) == 50.0
    assert default_percentage(3) == 33.33
    assert default_percentage(6) == 16.67


def test_round_share_uses_configured_mode():
    assert DEFAULT_RULES.round_share(0.125) == 0.12
    assert AllocationRules(rounding="half_up").round_share(0.125) == 0.13
    assert DEFAULT_RULES.round_share(0.129, rounding="down") == 0.12


def test_settings_round_trip():
    rules = AllocationRules(
        history_limit=10,
        inscriptions_indivisible=False,
        default_decimals=8,
        rounding="half_up",
        reconcile_on_asset_change=False,
    )

    assert AllocationRules.from_mapping(rules.to_mapping()) == rules


def test_missing_settings_keep_defaults():
    assert AllocationRules.from_mapping({}) == DEFAULT_RULES
    assert AllocationRules.from_mapping({"history_limit": " "}) == DEFAULT_RULES


@pytest.mark.parametrize(
    "settings",
    [
        {"history_limit": "many"},
        {"history_limit": "-1"},
        {"inscriptions_indivisible": "perhaps"},
        {"rounding": "banker"},
    ],
)
def test_invalid_settings_raise(settings):
    with pytest.raises(ValueError):
        AllocationRules.from_mapping(settings)


def test_missing_decimals_fall_back_to_default():
    eth = Asset("eth", "native", balance="2500000000000000000")

    assert eth.human_balance() == Decimal("2.5")
    assert eth.human_balance(DEFAULT_RULES.default_decimals) == Decimal("2.5")
    assert Asset("bad", "erc20", balance="n/a", decimals=6).human_balance() == 0
