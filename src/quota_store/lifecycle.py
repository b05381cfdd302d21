import threading

from .errors import StoppedError


class Lifecycle:
    """
    Running/stopped state of a single store.

    The only transition is running -> stopped and it happens at most once,
    no matter how many threads call stop() concurrently.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def check(self) -> None:
        """Raise StoppedError if the store has been stopped"""
        if self._stopped:
            raise StoppedError()

    def stop(self) -> bool:
        """
        Move to the stopped state.

        Returns:
            True for the caller that performed the transition, False for
            everyone after it
        """
        with self._lock:
            if self._stopped:
                return False
            self._stopped = True
            return True
