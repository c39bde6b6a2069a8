import threading


class CancellationToken:
    """
    A shutdown request shared by every loop of a route.

    The token is set once, by whoever owns the route, and is never reset. Loops poll
    `cancelled` between units of work and use `wait()` wherever they would otherwise sleep,
    so that a pending shutdown is noticed without waiting out the full delay.
    """

    def __init__(self):
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        """ requests shutdown. Calling this more than once has no further effect. """
        self._event.set()

    def wait(self, timeout=None) -> bool:
        """
        Sleeps for up to timeout seconds, returning early when the token is cancelled.
        :return: True if the token was cancelled.
        """
        if timeout is not None and timeout <= 0:
            return self.cancelled
        return self._event.wait(timeout)

    def __bool__(self):
        return self.cancelled
