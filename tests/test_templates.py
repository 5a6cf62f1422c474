import pytest

from legacyalloc.models import Allocation, Asset, Beneficiary
from legacyalloc.templates import TEMPLATES, apply_template
from legacyalloc.validation import RejectionCategory

USDC = Asset("usdc", "erc20", balance="1000000000", decimals=6, symbol="USDC")
ETH = Asset("eth", "native", balance="1000000000000000000", symbol="ETH")
PUNK = Asset("punk", "erc721", balance="1", decimals=0, symbol="PUNK")
ASSETS = (USDC, ETH, PUNK)
PEOPLE = tuple(Beneficiary(f"b{index}", f"Heir {index}") for index in range(1, 5))


def _shares(allocations, asset_id):
    return {a.beneficiary_id: a.percentage for a in allocations if a.asset_id == asset_id}


def test_equal_template_replaces_selected_assets_only():
    start = (Allocation.of_percentage("usdc", "b1", 10), Allocation.of_percentage("eth", "b2", 70))

    outcome = apply_template(start, ASSETS, PEOPLE[:2], ["usdc"], "equal")

    assert outcome.ok
    assert outcome.allocations[0] == start[1]
    assert _shares(outcome.allocations, "usdc") == {"b1": 50.0, "b2": 50.0}
    assert outcome.message == "Applied 'Equal Split' to 1 asset."


def test_first_gets_all():
    outcome = apply_template((), ASSETS, PEOPLE, ["usdc", "eth"], "first-gets-all")

    assert _shares(outcome.allocations, "usdc") == {"b1": 100.0}
    assert _shares(outcome.allocations, "eth") == {"b1": 100.0}


def test_weighted_template_is_scaled_to_full_share():
    three = TEMPLATES["weighted"].shares(PEOPLE[:3])
    four = TEMPLATES["weighted"].shares(PEOPLE)

    assert three == {"b1": 50.0, "b2": 30.0, "b3": 20.0}
    assert sum(four.values()) == pytest.approx(100.0)
    assert four["b1"] == pytest.approx(50.0 * 100 / 110)


def test_indivisible_asset_goes_to_largest_share():
    outcome = apply_template((), ASSETS, PEOPLE[:3], ["punk"], "weighted")

    assert outcome.allocations == (Allocation.of_percentage("punk", "b1", 100),)


@pytest.mark.parametrize(
    "beneficiaries, asset_ids, template_id, category",
    [
        (PEOPLE, ["usdc"], "golden-child", RejectionCategory.UNKNOWN_REFERENCE),
        ((), ["usdc"], "equal", RejectionCategory.NO_OP),
        (PEOPLE, [], "equal", RejectionCategory.NO_OP),
        (PEOPLE, ["doge"], "equal", RejectionCategory.UNKNOWN_REFERENCE),
    ],
)
def test_template_rejections(beneficiaries, asset_ids, template_id, category):
    outcome = apply_template((), ASSETS, beneficiaries, asset_ids, template_id)

    assert outcome.rejection.category is category
    assert outcome.allocations == ()
