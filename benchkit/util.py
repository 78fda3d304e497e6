import importlib.util
import logging
import time


# When True, device settle times are skipped (emulated hardware needs no time to move).
simulation = False


def find_package_location(package='benchkit'):
    return importlib.util.find_spec(package).submodule_search_locations[0]


def sleep(seconds):
    """ Wrapper for time.sleep() such that settle times can be skipped when simulating. """
    if simulation:
        return
    time.sleep(seconds)


def str2bool(buffer):
    if buffer.lower() == "true":
        return True
    elif buffer.lower() == "false":
        return False
    else:
        raise ValueError(f"Expected case insensitive bool but got '{buffer}'")


def poll_status(break_conditions, func, timeout=60, poll_interval=0.1):
    """ Poll `func()` until its return value is in `break_conditions`.

    :param break_conditions: iterable - func() return values at which to stop polling.
    :param func: callable - the status query.
    :param timeout: int, float (optional) - Raise TimeoutError if no break condition is met within timeout seconds.
                                            0, None, & negative values => infinite timeout.
    :param poll_interval: int, float (optional) - Seconds between queries.
    :return: The status that broke the poll.
    """
    log = logging.getLogger(__name__)
    t0 = time.perf_counter()
    while True:
        status = func()
        if status in break_conditions:
            return status

        if timeout and timeout > 0 and time.perf_counter() - t0 > timeout:
            raise TimeoutError(f"Polling '{getattr(func, '__name__', func)}' timed out after {timeout}s (last status: '{status}').")

        log.debug(f"Polled status: '{status}'")
        time.sleep(poll_interval)
