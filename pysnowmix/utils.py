from typing import Iterable


def find_first_hole_in_sequence(sequence: Iterable[int]) -> int:
    """Return the lowest free positive ID given the IDs already in use.

    e.g. if existing IDs used are [1, 2, 3, 5] return 4, then 6.
    A hole below the lowest used ID counts too: [2, 3] returns 1.
    """
    previous = 0
    for current in sorted(set(sequence)):
        if current > previous + 1:
            return previous + 1
        previous = current
    return previous + 1
