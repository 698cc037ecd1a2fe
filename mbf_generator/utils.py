from datetime import datetime
from typing import TypeVar, Iterator, Callable

from joblib import Parallel, delayed


T = TypeVar("T")
R = TypeVar("R")


def _progressbar(it: list[T], suffix="", show_every: int = 1) -> Iterator[T]:
    """A simple terminal progressbar."""
    size = 30
    count = len(it)

    start = datetime.now()

    def show(j):
        x = int(size * j / max(count, 1))
        print(
            "[{}{}] {}/{} {}, Elapsed: {:.3f} [s]".format(
                "#" * x,
                "." * (size - x),
                j,
                count,
                suffix,
                (datetime.now() - start).total_seconds(),
            ),
            end="\r",
            flush=True,
        )

    show(0)
    for i, item in enumerate(it):
        yield item
        if (i % show_every == 0) or (i == count - 1):
            show(i + 1)
    print("\n", flush=True)


def _map_domains(
    func: Callable[[T], R],
    items: list[T],
    n_jobs: int = 1,
    show_prog: bool = False,
    suffix: str = "",
) -> list[R]:
    """
    Apply `func` to each item, in order, optionally on a thread pool.

    The dense solves and SVDs that dominate each call release the GIL,
    so threads give real concurrency without copying the inputs.
    Results are always returned in the order of `items`.
    """
    if n_jobs == 1:
        if show_prog:
            items = _progressbar(items, suffix)
        return [func(x) for x in items]

    if show_prog:
        print(f"{suffix}: {len(items)} tasks on {n_jobs} workers", flush=True)
    return Parallel(n_jobs=n_jobs, prefer="threads")(delayed(func)(x) for x in items)
