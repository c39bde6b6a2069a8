import logging
import threading

logger = logging.getLogger(__name__)


class AsyncLoop:
    """ Runs a function repeatedly on a background daemon thread, pausing before each call.
        Exceptions are logged and the loop carries on.
    """

    def __init__(self, fn=None, args=(), interval=0, name=None, log=logger):
        """
        :param fn the function to run
        :param args arguments to pass to fn
        :param interval seconds to pause before each call
        """
        self.fn = fn
        self.args = args
        self.interval = interval
        self.name = name
        self.stop_event = threading.Event()
        self.background_thread = None
        self.logger = log

    def start(self):
        if self.background_thread is None:
            t = threading.Thread(target=self._run, name=self.name, daemon=True)
            self.background_thread = t
            t.start()

    def exception_handler(self, e):
        self.logger.exception(e)

    def _run(self):
        """ The processing loop for the background thread.
             Invokes the callable for as long as the stop signal is not received.
        """
        self._do(self.startup)
        while not self.stop_event.wait(self.interval):
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.debug("background thread %s exiting" % self.name)

    def _do(self, callme):
        """ runs a function and captures any exceptions """
        try:
            callme()
        except Exception as e:
            self.exception_handler(e)

    def startup(self):
        """ template method called when the thread starts"""
        pass

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        """ template method called when the thread exits """
        pass

    def stop(self):
        """ signals the thread to stop and waits for it, unless called from the thread itself. """
        self.stop_event.set()
        thread = self.background_thread
        self.background_thread = None
        if thread and thread is not threading.current_thread():
            thread.join()
