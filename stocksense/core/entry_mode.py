import logging
import threading

logger = logging.getLogger(__name__)


class EntryModeState:
    """Process-wide RFID entry mode flag.

    While enabled, operators may bind scanned tags to a product through bulk
    registration. It is configuration shared by every request, not request
    state, and it has no effect on manual movements or other sensor channels.
    """

    def __init__(self, initial: bool = False):
        self._lock = threading.Lock()
        self._enabled = bool(initial)

    def get(self) -> bool:
        with self._lock:
            return self._enabled

    def set(self, enabled: bool) -> bool:
        with self._lock:
            previous = self._enabled
            self._enabled = bool(enabled)
        if previous != enabled:
            logger.info("RFID entry mode %s", "enabled" if enabled else "disabled")
        return previous


__all__ = ["EntryModeState"]
