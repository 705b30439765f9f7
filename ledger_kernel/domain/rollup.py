"""
Hierarchical roll-up over an account arena.

    rollup(account) = own(account) + sum(rollup(child) for child in children)

Accounts are addressed by id in two flat indexes (own balance per id,
child ids per id) instead of object references, and the walk is iterative
with a processed set (memoized results) and an in-progress set (the
current path).  Termination therefore does not depend on the stored
hierarchy being acyclic or shallow: a child already on the current path
is skipped and reported through ``on_cycle``.
"""

from decimal import Decimal
from typing import Callable, Hashable, Iterable, Mapping, Sequence, TypeVar

K = TypeVar("K", bound=Hashable)

_ZERO = Decimal("0")


def rollup_balances(
    own: Mapping[K, Decimal],
    children_of: Mapping[K, Sequence[K]],
    roots: Iterable[K] | None = None,
    on_cycle: Callable[[K, K], None] | None = None,
) -> dict[K, Decimal]:
    """
    Roll balances up the hierarchy.

    Args:
        own: Direct (own) balance per account id.
        children_of: Child ids per parent id.
        roots: Ids to start from; defaults to every id in ``own``.
        on_cycle: Called with (parent_id, child_id) when a child is found
            on the current path; that edge contributes nothing.

    Returns:
        Rolled-up balance for every id reached.
    """
    rolled: dict[K, Decimal] = {}
    in_progress: set[K] = set()

    for start in (own.keys() if roots is None else roots):
        if start in rolled:
            continue
        stack: list[tuple[K, bool]] = [(start, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                total = own.get(node, _ZERO)
                for child in children_of.get(node, ()):
                    if child in rolled and child not in in_progress:
                        total += rolled[child]
                in_progress.discard(node)
                rolled[node] = total
                continue

            if node in rolled or node in in_progress:
                continue
            in_progress.add(node)
            stack.append((node, True))
            for child in children_of.get(node, ()):
                if child in in_progress:
                    if on_cycle is not None:
                        on_cycle(node, child)
                    continue
                if child not in rolled:
                    stack.append((child, False))

    return rolled
