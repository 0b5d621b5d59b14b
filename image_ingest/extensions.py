import logging
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import redis as _redis
from rq import Queue

logger = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()

# Initialized lazily in create_app
redis_client: _redis.Redis = None  # type: ignore
task_queue: Queue = None  # type: ignore


class InlineQueue:
    """Runs jobs synchronously when Redis is not configured (dev/tests)."""

    def enqueue(self, func, *args, **kwargs):
        try:
            func(*args, **kwargs)
        except Exception:
            logger.exception("Inline job %s failed", getattr(func, "__name__", func))
        return None


def init_redis(app):
    global redis_client, task_queue
    redis_client = None
    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        logger.warning("REDIS_URL not set; jobs run inline and locks are process-local")
        task_queue = InlineQueue()
        return

    try:
        client = _redis.from_url(redis_url, decode_responses=False)
        client.ping()
        redis_client = client
        task_queue = Queue("storage-cleanup", connection=redis_client)
    except Exception as e:
        logger.warning("Redis connection failed (%s); jobs run inline", e)
        task_queue = InlineQueue()
