# accumulator.py - Homomorphic fold of one new score into a user's aggregates

from dataclasses import dataclass

from fhe_executor import ZERO_HANDLE


@dataclass(frozen=True)
class Aggregate:
    total: bytes = ZERO_HANDLE
    average: bytes = ZERO_HANDLE
    event_count: int = 0


@dataclass(frozen=True)
class Fold:
    aggregate: Aggregate
    produced: tuple


def fold(executor, aggregate, new_handle):
    """
    Next aggregate after appending `new_handle`.

    total' = total + new (an unset total is the trivial zero), average' =
    total' // count' with the count in clear. No comparison, no branch on
    encrypted data. The total is a 32-bit value and wraps silently past
    2**32 - 1; individual scores are not range-checked here.

    Returns the new aggregate and the handles this step produced; the caller
    must grant them before publishing the aggregate.
    """
    total = executor.add(aggregate.total, new_handle)
    event_count = aggregate.event_count + 1
    average = executor.div(total, event_count)
    return Fold(Aggregate(total, average, event_count), (total, average))
