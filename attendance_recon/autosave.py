import logging
import threading

from .config import AUTOSAVE_DELAY_SECONDS

logger = logging.getLogger(__name__)


class CommitScheduler:
    """
    Commit-after-idle helper. ``mark_dirty`` (re)starts a timer; the commit
    callable runs once the timer fires with no newer change in between.
    With ``delay=None`` nothing is timed and commits only happen on ``flush``.
    """

    def __init__(self, commit, delay=AUTOSAVE_DELAY_SECONDS):
        self.commit = commit
        self.delay = delay
        self.commits = 0
        self._dirty = False
        self._timer = None
        self._closed = False
        self._lock = threading.Lock()

    @property
    def dirty(self):
        return self._dirty

    @property
    def pending(self):
        return self._timer is not None

    def mark_dirty(self):
        with self._lock:
            if self._closed:
                return
            self._dirty = True
            self._cancel_timer()
            if self.delay is not None:
                self._timer = threading.Timer(self.delay, self.flush)
                self._timer.daemon = True
                self._timer.start()

    def flush(self):
        """Run the commit now if anything changed; returns True when it ran."""
        with self._lock:
            self._cancel_timer()
            if not self._dirty:
                return False
            self._dirty = False
        self.commit()
        self.commits += 1
        logger.debug("Committed pending changes (%d so far)", self.commits)
        return True

    def cancel(self):
        """Drop a scheduled commit without running it."""
        with self._lock:
            self._cancel_timer()

    def close(self):
        with self._lock:
            self._closed = True
            self._cancel_timer()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
