from abc import ABC, abstractmethod

import pyvisa


class EmulatedResource:
    """ Emulates an open pyvisa message based resource. Replies are queued in the input buffer as they would be on the
        wire, i.e., encoded and terminated.
    """

    def __init__(self, device, resource_name, encoding="ascii", write_termination="\n", read_termination="\n",
                 **kwargs):
        self.device = device
        self.resource_name = resource_name
        self.encoding = encoding
        self.write_termination = write_termination
        self.read_termination = read_termination
        self.settings = kwargs  # Serial settings, timeout etc.
        self.closed = False
        self._input = bytearray()
        self._held = b""  # Rest of a split reply.

    @property
    def session(self):
        if self.closed:
            raise pyvisa.errors.InvalidSession()
        return id(self)

    @property
    def bytes_in_buffer(self):
        self.session
        return len(self._input)

    def write(self, message):
        self.session
        assert isinstance(message, str)

        # The rest of a split reply arrives before anything else.
        self._input += self._held
        self._held = b""

        reply = self.device.receive(message)
        if reply is not None:
            data = (reply + self.read_termination).encode(self.encoding)
            if message in self.device.split_replies:
                self.device.split_replies.discard(message)
                data, self._held = data[:len(data) // 2], data[len(data) // 2:]
            self._input += data
        return len(message) + len(self.write_termination)

    def read_bytes(self, count):
        self.session
        data = bytes(self._input[:count])
        del self._input[:count]
        return data

    def read(self):
        self.session
        terminator = self.read_termination.encode(self.encoding)
        index = self._input.find(terminator)
        if index < 0:
            raise pyvisa.errors.VisaIOError(pyvisa.constants.StatusCode.error_timeout)
        data = bytes(self._input[:index])
        del self._input[:index + len(terminator)]
        return data.decode(self.encoding)

    def query(self, message):
        self.write(message)
        return self.read()

    def clear(self):
        self.session
        self._input.clear()
        self._held = b""

    def close(self):
        self.closed = True


class PyVisaEmulator(ABC):
    """ Emulates pyvisa and its resource manager for a single device. Device state persists across connections. """

    def __init__(self):
        self.resource = None
        self.received = []  # All messages received, in order.
        # Messages whose next reply only half arrives, the rest coming with the next write.
        self.split_replies = set()

    def ResourceManager(self, *args, **kwargs):
        return self

    def open_resource(self, resource_name, **kwargs):
        self.resource = EmulatedResource(self, resource_name, **kwargs)
        return self.resource

    def receive(self, message):
        self.received.append(message)
        return self.handle(message)

    @abstractmethod
    def handle(self, message):
        """ Implement to act upon `message` (sans terminator).

        :return: str reply (sans terminator) or None for no reply.
        """
