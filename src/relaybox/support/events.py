import logging
import threading

logger = logging.getLogger(__name__)


class EventSource(object):
    """
    Dispatches events to registered handlers on the thread that fires them.

    Both directions of a route fire through the same source, so the handler list is guarded
    and a snapshot is taken before dispatch.
    """

    def __init__(self, log=logger):
        self._handlers = []
        self._lock = threading.Lock()
        self.logger = log

    def __iadd__(self, handler):
        return self.add(handler)

    def add(self, handler):
        with self._lock:
            self._handlers.append(handler)
        return self

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)
        return self

    def handlers(self):
        with self._lock:
            return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        """
        Invokes each handler. A handler that raises is logged and does not stop
        the remaining handlers, nor the caller.
        """
        for handler in self.handlers():
            try:
                handler(*args, **kwargs)
            except Exception as e:
                self.logger.exception("event handler %s failed: %s" % (handler, e))
