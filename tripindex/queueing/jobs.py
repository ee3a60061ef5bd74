# tripindex/queueing/jobs.py
from __future__ import annotations

from rq import Queue, Retry
from rq.job import Job

from tripindex.config import QueueConfig, load_settings
from tripindex.queueing.redis_conn import get_redis
from tripindex.queueing.tasks import (
    task_refresh_dirty,
    task_refresh_dirty_facts,
    task_refresh_trip,
    task_refresh_trip_facts,
)


def _queue_cfg() -> QueueConfig:
    return load_settings().queue


def get_queue(name: str | None = None) -> Queue:
    return Queue(name or _queue_cfg().queue_name, connection=get_redis())


def default_retry() -> Retry | None:
    """
    RQ retry policy using RETRY_SCHEDULE from .env.
    Number of retries = len(schedule). Backoffs follow the list values.
    An empty schedule disables retries.
    """
    schedule = _queue_cfg().retry_schedule
    if not schedule:
        return None
    return Retry(max=len(schedule), interval=schedule)


def _enqueue(func, *args, **kwargs) -> Job:
    q = get_queue()
    kwargs.setdefault("retry", default_retry())
    kwargs.setdefault("job_timeout", _queue_cfg().job_timeout_seconds)
    return q.enqueue(func, *args, **kwargs)


def enqueue_trip_refresh(trip_id: int, *, with_facts: bool = True) -> list[Job]:
    """
    Enqueue a search-surface refresh (and, by default, a fact refresh) for
    one trip. Both jobs are idempotent, so enqueueing twice is harmless.
    """
    jobs = [_enqueue(task_refresh_trip, trip_id)]
    if with_facts:
        jobs.append(_enqueue(task_refresh_trip_facts, trip_id))
    return jobs


def enqueue_dirty_drain(limit: int | None = None, *, drain_all: bool = False) -> list[Job]:
    """
    Enqueue drains of both dirty queues.
    """
    return [
        _enqueue(task_refresh_dirty, limit, drain_all),
        _enqueue(task_refresh_dirty_facts, limit),
    ]
