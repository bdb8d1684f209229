import json
import logging
import threading

from models import db, LocalEntry, UserDocument

logger = logging.getLogger(__name__)

# ── Defaults for a fresh (or signed-out) browser ──────────────────────────────
LOCAL_DEFAULTS = {
    "version": "nasb",
    "otChapters": 2,
    "ntChapters": 1,
    "isCustomSchedule": False,
    "progressMap": {},
    "customProgressMap": {},
    "customSchedule": [],
}


class LocalStore:
    """JSON-valued key/value storage for one anonymous browser (``client_id``)."""

    def __init__(self, client_id: str):
        self.client_id = client_id

    def _entry(self, key):
        return LocalEntry.query.filter_by(client_id=self.client_id, key=key).first()

    def get_item(self, key, default=None):
        entry = self._entry(key)
        if entry is None:
            return default
        try:
            return json.loads(entry.value)
        except ValueError:
            logger.error("[local] Error reading key %r for %s", key, self.client_id[:8])
            return default

    def set_item(self, key, value):
        entry = self._entry(key)
        text = json.dumps(value)
        if entry is None:
            db.session.add(LocalEntry(client_id=self.client_id, key=key, value=text))
        else:
            entry.value = text
        db.session.commit()

    def remove_item(self, key):
        entry = self._entry(key)
        if entry is not None:
            db.session.delete(entry)
            db.session.commit()

    def clear(self):
        LocalEntry.query.filter_by(client_id=self.client_id).delete()
        db.session.commit()

    def snapshot(self) -> dict:
        """All known fields, falling back to LOCAL_DEFAULTS for missing ones."""
        return {key: self.get_item(key, default) for key, default in LOCAL_DEFAULTS.items()}

    def reset(self):
        self.clear()
        for key, value in LOCAL_DEFAULTS.items():
            self.set_item(key, value)


def merge_document(current: dict, update: dict) -> dict:
    """Top-level fields replace; ``settings`` is merged key by key."""
    merged = dict(current or {})
    for key, value in update.items():
        if key == "settings" and isinstance(value, dict):
            settings = dict(merged.get("settings") or {})
            settings.update(value)
            merged["settings"] = settings
        else:
            merged[key] = value
    return merged


class UserDataStore:
    """Per-user document storage.

    ``on_io`` is called as ``on_io(kind, user_id)`` with kind ``"read"`` or
    ``"write"`` for every document access; pass None to skip.
    """

    def __init__(self, on_io=None):
        self.on_io = on_io
        # request threads and debounce timers both merge into the same document
        self._lock = threading.Lock()

    def _observe(self, kind, user_id):
        if self.on_io is not None:
            self.on_io(kind, user_id)

    def read(self, user_id) -> dict:
        if not user_id:
            raise ValueError("No user ID provided")
        self._observe("read", user_id)
        doc = UserDocument.query.filter_by(user_id=user_id).first()
        return dict(doc.data or {}) if doc else {}

    def exists(self, user_id) -> bool:
        return UserDocument.query.filter_by(user_id=user_id).first() is not None

    def update(self, user_id, data: dict) -> bool:
        if not user_id:
            raise ValueError("No user ID provided")
        self._observe("write", user_id)
        logger.info("[user-data] Updating %s for user %s", sorted(data), user_id)
        with self._lock:
            try:
                doc = (UserDocument.query.filter_by(user_id=user_id)
                       .with_for_update().first())
                if doc is None:
                    doc = UserDocument(user_id=user_id, data={})
                    db.session.add(doc)
                # reassign so the JSON column is marked dirty
                doc.data = merge_document(doc.data, data)
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("[user-data] Update error for user %s", user_id)
                raise
        return True


def io_tally(log=logger):
    """An ``on_io`` hook that keeps read/write counts and logs them."""
    counts = {"read": 0, "write": 0}

    def hook(kind, user_id):
        counts[kind] = counts.get(kind, 0) + 1
        log.debug("[user-data] %s for user %s (reads=%d writes=%d)",
                  kind, user_id, counts["read"], counts["write"])

    hook.counts = counts
    return hook
