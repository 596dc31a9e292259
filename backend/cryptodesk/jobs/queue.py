from __future__ import annotations

from redis import Redis
from rq import Queue
from rq.job import Job

from cryptodesk.config.settings import settings
from cryptodesk.jobs.ingestion import run_ingestion_job


def get_redis_connection() -> Redis:
    return Redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    queue_name = name or settings.ingestion_queue_name
    return Queue(name=queue_name, connection=get_redis_connection())


def enqueue_ingestion(**params) -> Job:
    queue = get_queue()
    # Backoff sleeps can outlast RQ's default 180s job timeout.
    return queue.enqueue(run_ingestion_job, kwargs=params, job_timeout=3600)
