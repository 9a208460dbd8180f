"""ARQ worker entrypoint."""

from arq.connections import ArqRedis, RedisSettings, create_pool

from noteworthy.core.config import get_settings
from noteworthy.workers.indexing import index_user_notes, reindex_note


def _redis_settings() -> RedisSettings:
    """ARQ RedisSettings from REDIS_URL."""
    return RedisSettings.from_dsn(get_settings().redis_url)


async def enqueue_job(function: str, **kwargs) -> str | None:
    """Enqueue an ARQ job and return its id (None when deduplicated)."""
    redis: ArqRedis = await create_pool(_redis_settings())
    try:
        job = await redis.enqueue_job(function, **kwargs)
    finally:
        await redis.aclose()
    return job.job_id if job is not None else None


async def startup(ctx: dict) -> None:
    """Called when the worker starts."""
    from noteworthy.core.database import init_db
    from noteworthy.core.log_config import configure_logging
    from noteworthy.services.indexer import IndexWriter

    configure_logging(get_settings().log_level)
    await init_db()
    ctx["index_writer"] = IndexWriter()


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""
    from noteworthy.core.database import engine
    await engine.dispose()


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [reindex_note, index_user_notes]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _redis_settings()
    max_jobs = 10
    job_timeout = 600  # bulk indexing of a large notebook


if __name__ == "__main__":
    from arq import run_worker
    run_worker(WorkerSettings)  # type: ignore[arg-type]
