from decimal import Decimal

import pytest

from legacyalloc.models import Allocation, Asset, Beneficiary
from legacyalloc.redistribution import (
    ReactorState,
    RedistributionReactor,
    reconcile_assets,
    reconcile_beneficiaries,
    removed_beneficiary_ids,
)

USDC = Asset("usdc", "erc20", balance="1000000000", decimals=6, symbol="USDC")
ETH = Asset("eth", "native", balance="1000000000000000000", symbol="ETH")
NFT = Asset("nft-7", "erc721", balance="1", decimals=0, symbol="NFT#7")
ASSETS = (USDC, ETH, NFT)
ALICE = Beneficiary("alice", "Alice")
BOB = Beneficiary("bob", "Bob")
CAROL = Beneficiary("carol", "Carol")


def _pct(asset_id, beneficiary_id, value):
    return Allocation.of_percentage(asset_id, beneficiary_id, value)


def test_removed_beneficiary_share_goes_to_remaining_holder():
    allocations = (_pct("usdc", "alice", 50), _pct("usdc", "bob", 50))

    result = reconcile_beneficiaries(allocations, ASSETS, (ALICE,))

    assert result == (_pct("usdc", "alice", 100),)


def test_freed_share_is_split_across_remaining_holders():
    allocations = (_pct("usdc", "alice", 50), _pct("usdc", "bob", 30), _pct("usdc", "carol", 20))

    result = reconcile_beneficiaries(allocations, ASSETS, (ALICE, BOB))

    assert result == (_pct("usdc", "alice", 60), _pct("usdc", "bob", 40))


def test_asset_left_without_holders_is_split_evenly():
    allocations = (_pct("eth", "alice", 100),)

    result = reconcile_beneficiaries(allocations, ASSETS, (BOB, CAROL))

    assert result == (_pct("eth", "bob", 50), _pct("eth", "carol", 50))


def test_indivisible_asset_goes_to_first_remaining_beneficiary():
    allocations = (_pct("nft-7", "alice", 100),)

    result = reconcile_beneficiaries(allocations, ASSETS, (BOB, CAROL))

    assert result == (_pct("nft-7", "bob", 100),)


def test_everything_dropped_when_no_beneficiaries_remain():
    allocations = (_pct("usdc", "alice", 100), _pct("nft-7", "alice", 100))

    assert reconcile_beneficiaries(allocations, ASSETS, ()) == ()


def test_allocations_of_unloaded_assets_are_only_dropped():
    allocations = (_pct("gone", "alice", 100), _pct("usdc", "bob", 100))

    result = reconcile_beneficiaries(allocations, ASSETS, (BOB,))

    assert result == (_pct("usdc", "bob", 100),)


def test_removed_amount_frees_capacity_without_redistribution():
    allocations = (Allocation.of_amount("usdc", "alice", Decimal("400")), _pct("usdc", "bob", 60))

    result = reconcile_beneficiaries(allocations, ASSETS, (BOB,))

    assert result == (_pct("usdc", "bob", 60),)


def test_nothing_changes_when_all_beneficiaries_exist():
    allocations = (_pct("usdc", "alice", 40),)

    assert reconcile_beneficiaries(allocations, ASSETS, (ALICE, BOB)) == allocations
    assert removed_beneficiary_ids(allocations, (ALICE,)) == set()
    assert removed_beneficiary_ids(allocations, (BOB,)) == {"alice"}


def test_reconcile_assets_drops_orphans():
    allocations = (_pct("usdc", "alice", 40), _pct("gone", "alice", 100))

    assert reconcile_assets(allocations, ASSETS) == (_pct("usdc", "alice", 40),)


def test_reactor_returns_to_idle():
    reactor = RedistributionReactor()
    allocations = (_pct("usdc", "alice", 50), _pct("usdc", "bob", 50))

    result = reactor.react(allocations, ASSETS, (ALICE,))

    assert result == (_pct("usdc", "alice", 100),)
    assert reactor.state is ReactorState.IDLE
    assert not reactor.busy


def test_reactor_refuses_to_run_inside_its_own_commit():
    reactor = RedistributionReactor()
    allocations = (_pct("usdc", "alice", 50), _pct("usdc", "bob", 50))
    seen = []

    def nested_commit(updated):
        seen.append(reactor.state)
        reactor.react(updated, ASSETS, (ALICE,))

    with pytest.raises(RuntimeError):
        reactor.react(allocations, ASSETS, (ALICE,), on_commit=nested_commit)

    assert seen == [ReactorState.REACTING]
    assert reactor.state is ReactorState.IDLE


def test_three_way_split_stays_even_after_removal():
    third = 100.0 / 3
    allocations = tuple(_pct("usdc", holder, third) for holder in ("alice", "bob", "carol"))

    result = reconcile_beneficiaries(allocations, ASSETS, (ALICE, BOB))

    assert result == (_pct("usdc", "alice", 50), _pct("usdc", "bob", 50))


def test_freed_share_reaches_amount_holders():
    allocations = (Allocation.of_amount("usdc", "alice", Decimal("400")), _pct("usdc", "bob", 60))

    result = reconcile_beneficiaries(allocations, ASSETS, (ALICE,))

    assert result == (Allocation.of_amount("usdc", "alice", Decimal("1000")),)
