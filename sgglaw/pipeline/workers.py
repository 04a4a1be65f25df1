# sgglaw/pipeline/workers.py
"""
Pool de workers com backpressure.

ThreadPoolExecutor + semaforo limitando tarefas em voo: o produtor (um unico
thread) bloqueia em submit() quando a fila enche, em vez de enfileirar o ano inteiro.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BoundedExecutor:
    def __init__(self, max_workers: int, queue_size: Optional[int] = None):
        self.max_workers = max(1, max_workers)
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="sgglaw")
        self._slots = threading.BoundedSemaphore(queue_size or self.max_workers * 2)

    def submit(self, fn: Callable[..., R], *args, **kwargs) -> Future:
        self._slots.acquire()
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except Exception:
            self._slots.release()
            raise
        future.add_done_callback(lambda _f: self._slots.release())
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BoundedExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)


def run_batch(
    items: Iterable[T],
    fn: Callable[[T], R],
    workers: int,
    label: str = "batch",
) -> List[Tuple[T, Optional[R], Optional[BaseException]]]:
    """
    Executa fn(item) em paralelo. Excecao de um item nunca aborta o lote:
    vira (item, None, exc) no resultado, na ordem de submissao.
    """
    submitted: List[Tuple[T, Future]] = []
    with BoundedExecutor(workers) as pool:
        for item in items:
            submitted.append((item, pool.submit(fn, item)))

    out: List[Tuple[T, Optional[R], Optional[BaseException]]] = []
    for item, future in submitted:
        exc = future.exception()
        if exc is not None:
            logger.error("%s: item %s falhou: %s", label, item, exc)
            out.append((item, None, exc))
        else:
            out.append((item, future.result(), None))
    return out
