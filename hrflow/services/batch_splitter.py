"""Split a stream of import rows into fixed-size batches."""

from itertools import islice
from typing import Iterable, Iterator, List, TypeVar

T = TypeVar("T")

BATCH_SIZE = 50


def split_into_batches(rows: Iterable[T], batch_size: int = BATCH_SIZE) -> Iterator[List[T]]:
    """
    Yield consecutive batches of at most `batch_size` rows, in input order.

    The last batch may be smaller. An empty input yields no batches; callers
    treat that as "no valid data" rather than an empty success.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be a positive integer")

    iterator = iter(rows)
    while True:
        batch = list(islice(iterator, batch_size))
        if not batch:
            return
        yield batch
