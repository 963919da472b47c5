# evline/workers/pool.py
"""
Пул процессов для пакетного расчёта EV.

▪ фиксированное число воркеров (по умолчанию половина ядер, 1..4)
▪ у каждого воркера своя ограниченная очередь, задания раскидываются по кругу
▪ ответы приходят в общую очередь, поток-сборщик сопоставляет их по job_id
  и резолвит concurrent.futures.Future
▪ задание несёт все данные по значению; общего состояния у воркеров нет

Запрос:  {job_id, hands: [EvHand.to_dict()], samples, seed}
Ответ:   {job_id, results: [{id, realized, adjusted, samples}], duration_ms}
Порядок results = порядок hands; между батчами порядок не гарантируется.
"""

from __future__ import annotations

import itertools
import logging
import multiprocessing as mp
import threading
import time
from concurrent.futures import Future
from typing import Dict, List, Optional, Sequence

from evline.analysis.ev import compute_hand_ev
from evline.models import EvHand
from evline.utils import default_pool_size

log = logging.getLogger(__name__)


def run_job(job: dict) -> dict:
    """Считает один батч (и в воркере, и синхронно в тестах)."""
    started = time.perf_counter()
    samples = int(job["samples"])
    seed = job.get("seed")
    results = []
    for raw in job["hands"]:
        hand = EvHand.from_dict(raw)
        ev = compute_hand_ev(hand, samples=samples, seed=seed)
        results.append(
            {
                "id": hand.id,
                "realized": ev.realized_change_cents,
                "adjusted": ev.allin_adjusted_change_cents,
                "samples": samples,
            }
        )
    return {
        "job_id": job["job_id"],
        "results": results,
        "duration_ms": int((time.perf_counter() - started) * 1000),
    }


def _worker_main(inbox, outbox) -> None:
    while True:
        job = inbox.get()
        if job is None:
            break
        try:
            outbox.put(run_job(job))
        except Exception as e:  # ошибку отдаём вызывающему, воркер живёт дальше
            outbox.put({"job_id": job.get("job_id"), "error": f"{type(e).__name__}: {e}"})


class PoolClosedError(RuntimeError):
    pass


class EvWorkerPool:
    def __init__(self, size: Optional[int] = None, queue_size: int = 8):
        self.size = max(1, size or default_pool_size())
        ctx = mp.get_context()
        self._inboxes = [ctx.Queue(maxsize=queue_size) for _ in range(self.size)]
        self._outbox = ctx.Queue()
        self._workers = [
            ctx.Process(target=_worker_main, args=(q, self._outbox), daemon=True)
            for q in self._inboxes
        ]
        for w in self._workers:
            w.start()

        self._inflight: Dict[int, Future] = {}
        self._lock = threading.Lock()
        self._job_ids = itertools.count(1)
        self._next = 0
        self._closed = False

        self._collector = threading.Thread(target=self._collect, name="ev-pool-collector", daemon=True)
        self._collector.start()
        log.debug("ev pool started: %d workers", self.size)

    # ---------- API ----------
    def run(self, hands: Sequence[EvHand], samples: int, seed: Optional[int] = None) -> Future:
        """Отправляет батч; Future резолвится ответом воркера (dict)."""
        if self._closed:
            raise PoolClosedError("pool is terminated")
        fut: Future = Future()
        with self._lock:
            job_id = next(self._job_ids)
            self._inflight[job_id] = fut
            worker = self._next
            self._next = (self._next + 1) % self.size
        job = {
            "job_id": job_id,
            "hands": [h.to_dict() for h in hands],
            "samples": int(samples),
            "seed": seed,
        }
        # блокирует, если очередь воркера заполнена
        self._inboxes[worker].put(job)
        return fut

    def map(self, batches: Sequence[Sequence[EvHand]], samples: int, seed: Optional[int] = None) -> List[dict]:
        futures = [self.run(b, samples, seed) for b in batches]
        return [f.result() for f in futures]

    def terminate(self) -> None:
        if self._closed:
            return
        self._closed = True
        for q in self._inboxes:
            q.put(None)
        for w in self._workers:
            w.join(timeout=5)
            if w.is_alive():
                w.terminate()
        self._outbox.put(None)
        self._collector.join(timeout=5)
        with self._lock:
            pending = list(self._inflight.values())
            self._inflight.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(PoolClosedError("pool terminated before job finished"))

    def __enter__(self) -> "EvWorkerPool":
        return self

    def __exit__(self, *exc) -> None:
        self.terminate()

    # ---------- internals ----------
    def _collect(self) -> None:
        while True:
            msg = self._outbox.get()
            if msg is None:
                break
            with self._lock:
                fut = self._inflight.pop(msg.get("job_id"), None)
            if fut is None:
                log.debug("dropping result for unknown job %s", msg.get("job_id"))
                continue
            if "error" in msg:
                fut.set_exception(RuntimeError(msg["error"]))
            else:
                fut.set_result(msg)
