from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Sequence, TypeVar

from .cancellation import is_cancelled
from .errors import OperationCancelled

_log = logging.getLogger(__name__)

T = TypeVar("T")

_POLL_SEC = 0.05


@dataclass(frozen=True)
class TaskFailure:
    index: int
    error: BaseException


@dataclass
class TaskGroupResult(Generic[T]):
    results: List[T] = field(default_factory=list)
    failures: List[TaskFailure] = field(default_factory=list)

    @property
    def dropped(self) -> int:
        return len(self.failures)


def run_task_group(
    tasks: Sequence[Callable[[], T]],
    *,
    max_concurrency: int,
    isolate_failures: bool = True,
    cancel: Any = None,
    name: str = "task group",
) -> TaskGroupResult[T]:
    """Run zero-argument tasks on at most `max_concurrency` threads.

    Results keep submission order. With `isolate_failures` a failing task is
    recorded in `failures` and left out of `results`; otherwise the first
    failure (by index) is raised. Cancellation is always raised.
    """
    if not tasks:
        return TaskGroupResult()
    if is_cancelled(cancel):
        raise OperationCancelled(name)

    workers = max(1, min(int(max_concurrency), len(tasks)))
    outcomes: Dict[int, Any] = {}
    errors: Dict[int, BaseException] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ai-batch") as ex:
        pending: Dict[Future, int] = {ex.submit(task): idx for idx, task in enumerate(tasks)}
        try:
            while pending:
                if is_cancelled(cancel):
                    raise OperationCancelled(name)
                done, _ = wait(list(pending), timeout=_POLL_SEC, return_when=FIRST_COMPLETED)
                for fut in done:
                    idx = pending.pop(fut)
                    exc = fut.exception()
                    if exc is None:
                        outcomes[idx] = fut.result()
                        continue
                    if isinstance(exc, OperationCancelled):
                        raise exc
                    errors[idx] = exc
        finally:
            for fut in pending:
                fut.cancel()

    if errors and not isolate_failures:
        raise errors[min(errors)]

    failures = [TaskFailure(index=idx, error=errors[idx]) for idx in sorted(errors)]
    for failure in failures:
        _log.warning("%s: task %d failed and was dropped: %s", name, failure.index, failure.error)
    return TaskGroupResult(results=[outcomes[idx] for idx in sorted(outcomes)], failures=failures)

