import pytest
from conftest import make_listing

from modules.hiring_watch.lib.seen import SeenSet


def _batch(*ids):
    return [make_listing(i) for i in ids]


def test_new_is_batch_minus_seen_in_order():
    seen = SeenSet()
    seen.record(_batch("J1", "J2"))

    new = seen.filter_new(_batch("J3", "J1", "J4", "J2"))

    assert [x.job_id for x in new] == ["J3", "J4"]


def test_nothing_new_when_batch_is_subset():
    seen = SeenSet()
    seen.record(_batch("J1", "J2", "J3"))
    assert seen.filter_new(_batch("J2", "J1")) == []


def test_duplicates_in_one_batch_collapse():
    seen = SeenSet()
    new = seen.filter_new(_batch("J1", "J1", "J2"))
    assert [x.job_id for x in new] == ["J1", "J2"]


def test_trim_keeps_most_recent_and_respects_capacity():
    seen = SeenSet("trim", capacity=10, retain=4)
    seen.record(_batch(*[f"J{i}" for i in range(10)]))
    assert len(seen) == 10

    seen.record(_batch("J10"))

    assert len(seen) == 4
    assert all(f"J{i}" in seen for i in (7, 8, 9, 10))
    assert "J0" not in seen


def test_refetched_ids_move_to_recent_end():
    seen = SeenSet("trim", capacity=3, retain=2)
    seen.record(_batch("A", "B", "C"))
    # A is still on the board: it should survive the next trim.
    seen.record(_batch("A", "D"))
    assert "A" in seen and "D" in seen
    assert "B" not in seen and "C" not in seen


def test_size_never_exceeds_capacity_after_record():
    seen = SeenSet("trim", capacity=50, retain=25)
    for start in range(0, 500, 17):
        seen.record(_batch(*[f"J{i}" for i in range(start, start + 17)]))
        assert len(seen) <= 50


def test_clear_policy_does_not_trim_and_clear_empties():
    seen = SeenSet("clear", capacity=2, retain=1)
    seen.record(_batch("A", "B", "C", "D"))
    assert len(seen) == 4

    assert seen.clear() == 4
    assert len(seen) == 0
    assert [x.job_id for x in seen.filter_new(_batch("A"))] == ["A"]


def test_rejects_bad_parameters():
    with pytest.raises(ValueError):
        SeenSet("forever")
    with pytest.raises(ValueError):
        SeenSet("trim", capacity=5, retain=6)
