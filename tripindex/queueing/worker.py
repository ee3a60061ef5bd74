# tripindex/queueing/worker.py
from __future__ import annotations

import logging
import os

from rq import Queue
from rq import SimpleWorker as RQSimpleWorker
from rq import Worker as RQWorker

from tripindex.config import load_settings
from tripindex.queueing import tasks as _tasks  # noqa: F401  (ensure task module is imported)
from tripindex.queueing.redis_conn import get_redis

log = logging.getLogger(__name__)


def _queue_names() -> list[str]:
    raw = os.getenv("RQ_QUEUE", "")
    if raw.strip():
        return [q.strip() for q in raw.split(",") if q.strip()]
    return [load_settings().queue.queue_name]


def _select_worker_cls():
    """
    Windows has no fork, so always use SimpleWorker there; elsewhere use the
    forking Worker.
    """
    if os.name == "nt":
        return RQSimpleWorker
    return RQWorker


def run():
    cfg = load_settings()
    if not logging.getLogger().handlers:
        logging.basicConfig(level=cfg.log_level, format="%(levelname)s %(message)s")

    r = get_redis()
    queue_names = _queue_names()
    queues = [Queue(name, connection=r) for name in queue_names]

    worker_cls = _select_worker_cls()
    log.info("Worker class: %s.%s", worker_cls.__module__, worker_cls.__name__)
    log.info("Queues: %s", ", ".join(queue_names))

    w = worker_cls(queues, connection=r)
    if worker_cls is RQWorker:
        w.work(with_scheduler=True)
    else:
        w.work()


if __name__ == "__main__":
    run()
