import pytest

from pysnowmix.utils import find_first_hole_in_sequence


def test_empty_sequence_starts_at_one():
    assert find_first_hole_in_sequence([]) == 1


@pytest.mark.parametrize(
    "used, expected",
    [
        ([1], 2),
        ([1, 2, 3], 4),
        ([1, 2, 3, 5], 4),
        ([1, 2, 3, 4, 5], 6),
        ([5, 3, 1, 2], 4),
        ([1, 3, 4, 6], 2),
        ([2], 1),
        ([2, 3], 1),
        ([1, 1, 2], 3),
    ],
)
def test_lowest_free_id(used, expected):
    assert find_first_hole_in_sequence(used) == expected


def test_never_returns_a_used_id():
    used = [1, 2, 4, 7, 8, 10]
    for _ in range(10):
        next_id = find_first_hole_in_sequence(used)
        assert next_id not in used
        used.append(next_id)
    assert sorted(used) == list(range(1, 17))


def test_does_not_modify_its_argument():
    used = [3, 1, 2]
    find_first_hole_in_sequence(used)
    assert used == [3, 1, 2]
