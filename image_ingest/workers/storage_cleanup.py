"""RQ worker job: delete storage objects no row references any more."""
import logging

from flask import current_app, has_app_context

from image_ingest import extensions
from image_ingest.locks import keyed_lock
from image_ingest.services import image_records, storage_service

logger = logging.getLogger(__name__)

_worker_app = None


def _get_app():
    """Return an app instance for worker execution.

    Reuse the current app when already inside an app context (tests/CLI),
    otherwise lazily create the worker app once.
    """
    global _worker_app
    if has_app_context():
        return current_app._get_current_object()
    if _worker_app is None:
        from image_ingest import create_app

        _worker_app = create_app()
    return _worker_app


def purge_unreferenced(lock_name, storage_keys):
    """Delete the keys in ``storage_keys`` that no image row points at.

    ``lock_name`` is the keyed lock writers of these keys hold (the content
    hash for product variants, the slot for site images), so a concurrent
    upload that re-references the same objects is never undercut.

    Returns the deleted keys.
    """
    app = _get_app()
    with app.app_context():
        with keyed_lock(lock_name):
            still_used = image_records.referenced_keys(storage_keys)
            orphaned = sorted(set(storage_keys) - still_used)
            if not orphaned:
                logger.info("All %d objects under %s still referenced", len(storage_keys), lock_name)
                return []
            storage_service.delete_many(orphaned)
            logger.info("Purged %d unreferenced objects under %s", len(orphaned), lock_name)
            return orphaned


def schedule_purge(lock_name, storage_keys):
    """Queue a purge. Runs inline when Redis is not configured."""
    if not storage_keys:
        return
    extensions.task_queue.enqueue(purge_unreferenced, lock_name, list(storage_keys))
