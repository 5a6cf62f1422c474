import logging

import pytest

from legacyalloc import AllocationEngine, AllocationRules, RejectionCategory
from legacyalloc.models import Allocation, Asset, Beneficiary
from legacyalloc.redistribution import ReactorState

USDC = Asset("usdc", "erc20", balance="1000000000", decimals=6, chain="ethereum", symbol="USDC")
ETH = Asset("eth", "native", balance="1500000000000000000", chain="ethereum", symbol="ETH")
NFT = Asset("nft-7", "erc721", balance="1", decimals=0, chain="ethereum", symbol="NFT#7")
ALICE = Beneficiary("alice", "Alice", "0xa11ce")
BOB = Beneficiary("bob", "Bob", "0xb0b")


def _pct(asset_id, beneficiary_id, value):
    return Allocation.of_percentage(asset_id, beneficiary_id, value)


def _build_engine(**kwargs):
    return AllocationEngine(assets=(USDC, ETH, NFT), beneficiaries=(ALICE, BOB), **kwargs)


def test_quick_allocate_then_remove_beneficiary():
    engine = _build_engine()
    engine.quick_allocate()
    assert engine.allocations[:2] == (_pct("usdc", "alice", 50), _pct("usdc", "bob", 50))

    engine.set_beneficiaries([ALICE])

    shares = {(a.asset_id, a.beneficiary_id): a.percentage for a in engine.allocations}
    assert shares == {("usdc", "alice"): 100.0, ("eth", "alice"): 100.0, ("nft-7", "alice"): 100.0}


def test_second_owner_of_nft_is_rejected():
    engine = _build_engine()

    assert engine.add_allocation("nft-7", "alice", value=100).ok
    outcome = engine.add_allocation("nft-7", "bob", value=100)

    assert outcome.rejection.category is RejectionCategory.INDIVISIBLE_CONFLICT
    assert "already allocated to Alice" in outcome.message
    assert engine.allocations == (_pct("nft-7", "alice", 100),)


def test_over_allocation_leaves_list_and_history_untouched():
    engine = _build_engine()
    engine.add_allocation(["usdc"], "alice", value=70)
    history = engine.store.history

    outcome = engine.add_allocation(["usdc"], "bob", value=40)

    assert outcome.rejection.remaining == pytest.approx(30.0)
    assert engine.allocations == (_pct("usdc", "alice", 70),)
    assert engine.store.history == history


def test_undo_steps_back_through_history():
    engine = _build_engine()
    engine.add_allocation(["usdc"], "alice", value=40)
    after_first = engine.allocations
    engine.add_allocation(["usdc"], "bob", value=30)
    engine.add_allocation(["eth"], "bob", value=10)

    assert engine.undo_last().ok
    assert engine.undo_last().ok

    assert engine.allocations == after_first
    assert engine.undo_last().ok
    assert engine.allocations == ()

    empty = engine.undo_last()
    assert empty.rejection.category is RejectionCategory.NO_OP
    assert empty.message == "Nothing to undo."


@pytest.mark.parametrize(
    "operation",
    [
        lambda engine: engine.remove_allocation("usdc", "alice"),
        lambda engine: engine.reassign("usdc", "alice", "bob"),
        lambda engine: engine.quick_allocate(),
        lambda engine: engine.apply_template(["usdc", "nft-7"], "weighted"),
        lambda engine: engine.add_allocation(["eth"], "alice", "amount", "0.5"),
    ],
)
def test_undo_reverts_every_operation(operation):
    engine = _build_engine()
    engine.add_allocation(["usdc"], "alice", value=60)
    before = engine.allocations

    assert operation(engine).ok
    assert engine.allocations != before

    engine.undo_last()
    assert engine.allocations == before


def test_history_is_capped():
    engine = _build_engine(rules=AllocationRules(history_limit=2))
    for value in (10, 20, 30, 40):
        engine.add_allocation(["usdc"], "alice", value=value)

    assert engine.undo_last().ok
    assert engine.undo_last().ok
    assert not engine.undo_last().ok
    assert engine.allocations == (_pct("usdc", "alice", 20),)


def test_beneficiary_removal_is_not_recorded_in_history():
    engine = _build_engine()
    engine.quick_allocate()

    engine.set_beneficiaries([ALICE])

    assert len(engine.store.history) == 1


def test_undo_reconciles_against_current_beneficiaries():
    engine = _build_engine()
    engine.add_allocation(["usdc"], "alice", value=50)
    engine.add_allocation(["usdc"], "bob", value=30)
    engine.add_allocation(["usdc"], "alice", value=60)
    engine.set_beneficiaries([ALICE])
    assert engine.allocations == (_pct("usdc", "alice", 90),)

    engine.undo_last()

    assert engine.allocations == (_pct("usdc", "alice", 80),)


def test_listeners_receive_new_list():
    engine = _build_engine()
    received = []
    unsubscribe = engine.subscribe(received.append)

    engine.add_allocation(["usdc"], "alice", value=25)
    engine.add_allocation(["usdc"], "bob", value=90)
    unsubscribe()
    engine.add_allocation(["usdc"], "bob", value=10)

    assert received == [(_pct("usdc", "alice", 25),)]


def test_removed_assets_drop_their_allocations():
    engine = _build_engine()
    engine.quick_allocate()

    engine.set_assets([USDC])

    assert {a.asset_id for a in engine.allocations} == {"usdc"}


def test_asset_reconciliation_can_be_disabled():
    engine = _build_engine(rules=AllocationRules(reconcile_on_asset_change=False))
    engine.quick_allocate()

    engine.set_assets([USDC])

    assert {a.asset_id for a in engine.allocations} == {"usdc", "eth", "nft-7"}


def test_listeners_cannot_edit_during_redistribution():
    engine = _build_engine()
    engine.add_allocation(["usdc"], "alice", value=50)
    engine.add_allocation(["usdc"], "bob", value=50)

    def meddle(allocations):
        engine.add_allocation(["eth"], "alice", value=10)

    engine.subscribe(meddle)
    with pytest.raises(RuntimeError):
        engine.set_beneficiaries([ALICE])

    assert engine.reactor.state is ReactorState.IDLE
    assert engine.allocations == (_pct("usdc", "alice", 100),)


def test_three_way_quick_allocate_then_remove_keeps_shares_equal():
    carol = Beneficiary("carol", "Carol")
    engine = AllocationEngine(assets=(USDC,), beneficiaries=(ALICE, BOB, carol))
    engine.quick_allocate()

    engine.remove_allocation("usdc", "carol")

    first, second = (allocation.percentage for allocation in engine.allocations)
    assert first == second == pytest.approx(50.0)


def test_read_helpers():
    engine = _build_engine()
    engine.add_allocation(["usdc"], "alice", value=40)

    assert engine.default_percentage() == 50.0
    assert [asset.id for asset in engine.unallocated_assets()] == ["eth", "nft-7"]
    usdc = engine.summary()[0]
    assert usdc.remaining_percentage == pytest.approx(60.0)
    assert [s.asset_count for s in engine.beneficiary_summary()] == [1, 0]


def test_redistribution_is_logged(caplog):
    engine = _build_engine()
    engine.quick_allocate()

    with caplog.at_level(logging.INFO, logger="legacyalloc"):
        engine.set_beneficiaries([ALICE])

    assert "deleted beneficiar" in caplog.text
