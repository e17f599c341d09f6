# tests/test_finder.py
import pytest

from balance_sim.core.state import StateView
from balance_sim.errors import InspectionError, SlotNotFoundError
from balance_sim.slots.finder import find_balance_slot
from balance_sim.slots.recorder import SlotWithAddress

from . import contracts
from .chain import CONSTANT, FRONT, HOLDER, LEDGER, PROXY, REVERTING, SILENT, TOKEN

HOLDER_SLOT = contracts.mapping_slot(HOLDER, contracts.BALANCES_SLOT)


def test_finds_plain_mapping_slot(remote_view, block):
    assert find_balance_slot(TOKEN, HOLDER, remote_view, block) == SlotWithAddress(TOKEN, HOLDER_SLOT)


def test_proxy_slot_lives_in_proxy_storage(remote_view, block):
    assert find_balance_slot(PROXY, HOLDER, remote_view, block) == SlotWithAddress(PROXY, HOLDER_SLOT)


def test_finds_slot_in_separate_ledger_contract(remote_view, block):
    assert find_balance_slot(FRONT, HOLDER, remote_view, block) == SlotWithAddress(LEDGER, HOLDER_SLOT)


def test_constant_balance_is_not_found(remote_view, block):
    with pytest.raises(SlotNotFoundError) as exc_info:
        find_balance_slot(CONSTANT, HOLDER, remote_view, block)
    assert exc_info.value.candidates == 1
    assert exc_info.value.stage == "discovery"


def test_reverting_query_is_an_inspection_error(remote_view, block):
    with pytest.raises(InspectionError) as exc_info:
        find_balance_slot(REVERTING, HOLDER, remote_view, block)
    assert exc_info.value.reason == "balance queries disabled"


def test_query_without_return_value_is_an_inspection_error(remote_view, block):
    with pytest.raises(InspectionError, match="returned no value"):
        find_balance_slot(SILENT, HOLDER, remote_view, block)


def test_fetch_failure_is_an_inspection_error(remote_view, provider, block):
    provider.fail_with = "connection reset"
    with pytest.raises(InspectionError, match="connection reset"):
        find_balance_slot(TOKEN, HOLDER, remote_view, block)


def test_discovery_is_deterministic(provider, block):
    results = {
        find_balance_slot(FRONT, HOLDER, StateView(provider=provider, block_number=block.number), block)
        for _ in range(3)
    }
    assert results == {SlotWithAddress(LEDGER, HOLDER_SLOT)}


def test_candidate_testing_needs_no_network(remote_view, provider, block):
    find_balance_slot(TOKEN, HOLDER, remote_view, block)
    fetches = provider.fetches
    # a second discovery on the same view re-uses materialized state only
    find_balance_slot(TOKEN, HOLDER, remote_view, block)
    assert provider.fetches == fetches


def test_discovery_leaves_view_without_marker(remote_view, block):
    find_balance_slot(TOKEN, HOLDER, remote_view, block)
    assert remote_view.peek_storage(TOKEN, HOLDER_SLOT) == 0
