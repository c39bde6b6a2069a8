import time


class PeriodRetryStrategy:
    """
    Spaces out attempts so that consecutive attempts start at least retry_period seconds apart.
    """

    def __init__(self, retry_period, clock=time.monotonic, last_tried=None):
        """
        :param retry_period: The minimum time between attempts, in seconds.
        :param clock: provides the current time when the caller does not pass it.
        """
        self.retry_period = retry_period
        self.clock = clock
        self.last_tried = last_tried        # the time the last attempt started

    def __call__(self, current_time=None):
        """return the length of time until the next attempt may start.
            When the result is not positive, the attempt is considered started at current_time
        """
        if current_time is None:
            current_time = self.clock()
        result = self._time_to_retry(current_time)
        if result <= 0:
            self.last_tried = current_time
        return result

    def _time_to_retry(self, current_time):
        return 0 if self.last_tried is None else self.retry_period - (current_time - self.last_tried)

    def wait(self, cancel):
        """
        Blocks until the next attempt may start, or until cancel fires.
        The attempt is then recorded as started.
        :param cancel: the CancellationToken that interrupts the wait
        :return: True when the attempt may go ahead, False when cancelled.
        """
        while not cancel.cancelled:
            delay = self()
            if delay <= 0:
                return True
            cancel.wait(delay)
        return False
