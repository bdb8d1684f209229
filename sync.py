import logging
import threading

logger = logging.getLogger(__name__)


class DebouncedWriter:
    """Coalesce rapid progress edits into one remote write per user.

    ``write(user_id, payload)`` runs ``delay`` seconds after the last
    ``submit`` for that user; earlier payloads for the same user are dropped
    (last write wins). A ``delay`` of 0 or less writes straight away.
    """

    def __init__(self, write, delay: float = 1.0):
        self._write = write
        self.delay = delay
        self._lock = threading.Lock()
        self._pending = {}  # user_id -> (timer, payload)

    def submit(self, user_id, payload):
        if self.delay <= 0:
            self._run(user_id, payload)
            return
        timer = threading.Timer(self.delay, self._fire, args=(user_id,))
        timer.daemon = True
        with self._lock:
            previous = self._pending.get(user_id)
            if previous is not None:
                previous[0].cancel()
            self._pending[user_id] = (timer, payload)
        timer.start()

    def pending(self, user_id):
        with self._lock:
            item = self._pending.get(user_id)
        return item[1] if item else None

    def cancel(self, user_id) -> bool:
        with self._lock:
            item = self._pending.pop(user_id, None)
        if item is None:
            return False
        item[0].cancel()
        logger.info("[sync] Dropped pending write for user %s", user_id)
        return True

    def flush(self, user_id=None):
        """Write pending payloads now (one user, or everyone)."""
        with self._lock:
            if user_id is None:
                items, self._pending = list(self._pending.items()), {}
            else:
                item = self._pending.pop(user_id, None)
                items = [(user_id, item)] if item else []
        for uid, (timer, payload) in items:
            timer.cancel()
            self._run(uid, payload)

    def _fire(self, user_id):
        with self._lock:
            item = self._pending.pop(user_id, None)
        if item is not None:
            self._run(user_id, item[1])

    def _run(self, user_id, payload):
        try:
            self._write(user_id, payload)
            logger.info("[sync] Progress write successful for user %s", user_id)
        except Exception:
            logger.exception("[sync] Error saving progress for user %s", user_id)
