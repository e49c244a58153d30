"""
Order model: mutation primitives over position-carrying lists.

Every function returns new lists of new items (``dataclasses.replace``); the
input snapshot is never touched, so a caller can keep the pre-move list
around for rollback.
"""
from dataclasses import replace
from typing import List, Sequence, Tuple, TypeVar

from .errors import InvalidMoveRequest

T = TypeVar("T")


def renumber(items: Sequence[T]) -> List[T]:
    """Copy ``items`` so that each item's position equals its index."""
    return [
        item if item.position == index else replace(item, position=index)
        for index, item in enumerate(items)
    ]


def is_contiguous(items: Sequence) -> bool:
    """True when positions are exactly 0..n-1 in list order."""
    return [item.position for item in items] == list(range(len(items)))


def _check_index(index: int, upper: int, what: str) -> None:
    if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index <= upper:
        raise InvalidMoveRequest(f"{what} {index!r} out of range 0..{upper}")


def move_within_list(items: Sequence[T], from_index: int, to_index: int) -> Sequence[T]:
    """
    Move the element at ``from_index`` so it ends up at ``to_index``.

    ``to_index`` is an index into the list with the element already removed.
    Returns the input unchanged when the two indexes are equal.

    Raises InvalidMoveRequest if either index is out of range.
    """
    if not items:
        raise InvalidMoveRequest("cannot move within an empty list")
    _check_index(from_index, len(items) - 1, "from_index")
    _check_index(to_index, len(items) - 1, "to_index")
    if from_index == to_index:
        return items

    result = list(items)
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return renumber(result)


def move_across_lists(
    source: Sequence[T],
    dest: Sequence[T],
    from_index: int,
    to_index: int,
    dest_container_id,
    container_attr: str = "column_id",
) -> Tuple[List[T], List[T]]:
    """
    Move ``source[from_index]`` into ``dest`` at ``to_index``.

    The moved element's container reference is set to ``dest_container_id``
    and both resulting lists are renumbered independently. ``to_index`` equal
    to ``len(dest)`` appends.

    Raises InvalidMoveRequest if either index is out of range.
    """
    if not source:
        raise InvalidMoveRequest("cannot move out of an empty list")
    _check_index(from_index, len(source) - 1, "from_index")
    _check_index(to_index, len(dest), "to_index")

    new_source = list(source)
    moved = new_source.pop(from_index)
    moved = replace(moved, **{container_attr: dest_container_id})
    new_dest = list(dest)
    new_dest.insert(to_index, moved)
    return renumber(new_source), renumber(new_dest)


def remove_at(items: Sequence[T], index: int) -> List[T]:
    """Drop ``items[index]`` and close the gap it leaves."""
    if not items:
        raise InvalidMoveRequest("cannot remove from an empty list")
    _check_index(index, len(items) - 1, "index")
    result = list(items)
    del result[index]
    return renumber(result)
