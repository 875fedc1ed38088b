from datetime import date, timedelta

import pytest

from dtps_planner.domain.entities import PhaseStatus
from dtps_planner.domain.errors import OutOfWindow, Overlap
from dtps_planner.domain.overlap import OverlapValidator, ranges_overlap
from tests.builders import make_phase


@pytest.fixture()
def validator() -> OverlapValidator:
    return OverlapValidator()


@pytest.fixture()
def chain():
    return [
        make_phase("b", date(2024, 1, 11), 10),
        make_phase("a", date(2024, 1, 1), 10),
    ]


def test_adjacent_ranges_do_not_overlap(validator, chain) -> None:
    assert validator.find_overlap(date(2024, 1, 21), date(2024, 1, 30), chain) is None


def test_first_conflict_in_chain_order_is_reported(validator, chain) -> None:
    result = validator.find_overlap(date(2024, 1, 5), date(2024, 1, 15), chain)

    assert result is not None
    assert result.conflicting_phase.phase_id == "a"
    assert result.next_available_start == date(2024, 1, 11)


def test_excluded_phase_is_ignored(validator, chain) -> None:
    assert validator.find_overlap(date(2024, 1, 2), date(2024, 1, 9), chain, exclude_phase_id="a") is None


def test_cancelled_phases_do_not_block(validator) -> None:
    cancelled = make_phase("x", date(2024, 1, 1), 10, status=PhaseStatus.CANCELLED)
    assert validator.find_overlap(date(2024, 1, 1), date(2024, 1, 10), [cancelled]) is None


def test_ensure_no_overlap_raises_with_context(validator, chain) -> None:
    with pytest.raises(Overlap) as excinfo:
        validator.ensure_no_overlap(date(2024, 1, 20), date(2024, 1, 25), chain)

    payload = excinfo.value.to_dict()
    assert payload["conflicting_phase_id"] == "b"
    assert payload["next_available_start"] == "2024-01-21"


def test_overlap_verdict_is_symmetric() -> None:
    base = date(2024, 1, 1)
    offsets = range(0, 12, 3)
    lengths = (1, 4, 9)
    for a_off in offsets:
        for a_len in lengths:
            for b_off in offsets:
                for b_len in lengths:
                    a = (base + timedelta(days=a_off), base + timedelta(days=a_off + a_len - 1))
                    b = (base + timedelta(days=b_off), base + timedelta(days=b_off + b_len - 1))
                    assert ranges_overlap(*a, *b) == ranges_overlap(*b, *a)


def test_window_constrains_start_only(validator) -> None:
    validator.validate_start_within_window(date(2024, 1, 31), date(2024, 1, 1), date(2024, 1, 31))
    validator.validate_start_within_window(date(2024, 3, 1), None, None)

    with pytest.raises(OutOfWindow):
        validator.validate_start_within_window(date(2023, 12, 31), date(2024, 1, 1), date(2024, 1, 31))
    with pytest.raises(OutOfWindow):
        validator.validate_start_within_window(date(2024, 2, 1), date(2024, 1, 1), date(2024, 1, 31))


def test_suggest_next_start(validator, chain) -> None:
    assert validator.suggest_next_start(chain, default=date(2024, 6, 1)) == date(2024, 1, 21)
    assert validator.suggest_next_start([], default=date(2024, 6, 1)) == date(2024, 6, 1)
