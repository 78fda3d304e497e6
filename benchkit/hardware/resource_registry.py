import logging
import threading


class ResourceRegistry:
    """ Process wide registry ensuring at most one live handle per physical resource address.

        Acquiring an address that is already held closes and forgets the prior handle first.
    """

    def __init__(self):
        self.log = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._handles = {}

    def __contains__(self, address):
        with self._lock:
            return address in self._handles

    def __len__(self):
        with self._lock:
            return len(self._handles)

    def get(self, address):
        with self._lock:
            return self._handles.get(address)

    def acquire(self, address, opener):
        """ Open and register a new handle for `address`, closing any handle already registered for it.

        :param address: str - Resource address, e.g., "ASRL4::INSTR", "USB0::...::INSTR".
        :param opener: callable() - Returns the newly opened handle.
        :return: The new handle.
        """
        with self._lock:
            prior = self._handles.pop(address, None)
            if prior is not None:
                self.log.warning(f"'{address}' is already in use. Closing the prior handle.")
                self._close(address, prior)

            handle = opener()
            self._handles[address] = handle
            self.log.debug(f"Registered handle for '{address}'")
            return handle

    def release(self, address, handle):
        """ Close `handle` and forget it, if it is still the handle registered for `address`.

        :return: bool - Whether the handle was registered (and thus closed).
        """
        with self._lock:
            if self._handles.get(address) is not handle:
                return False
            del self._handles[address]
            self._close(address, handle)
            return True

    def clear(self):
        with self._lock:
            while self._handles:
                address, handle = self._handles.popitem()
                self._close(address, handle)

    def _close(self, address, handle):
        try:
            handle.close()
        finally:
            self.log.debug(f"Released handle for '{address}'")


RESOURCE_REGISTRY = ResourceRegistry()
