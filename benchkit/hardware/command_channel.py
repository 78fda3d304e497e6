"""
Synchronous command/response channel for text protocol devices (e.g., serial over USB).

A command is (re)sent at a fixed interval until the reply read back from the device satisfies an acceptance
predicate or the timeout elapses. The same interval is used both to re-send the command and to poll for
pending input.
"""

from collections import namedtuple
import logging
import re
import time

import pyvisa


log = logging.getLogger(__name__)

NO_RESPONSE_EXPECTED = "no response expected"
DEFAULT_RETRY_INTERVAL = 0.1  # Seconds.
DEFAULT_TIMEOUT = 2  # Seconds.

# Addressed (multi-drop) replies are prefixed with the device's numeric address, e.g., "3:OK." -> "OK.".
ADDRESSED_REPLY_PATTERN = re.compile(r"^\s*(?P<address>\d+):(?P<payload>.*)$", re.DOTALL)
REPLY_PATTERN = re.compile(r"^\s*(?P<address>\d*):(?P<payload>.*)$", re.DOTALL)


class InstrumentError(IOError):
    def __init__(self, msg, response=''):
        super().__init__(msg)
        self.response = response


class NotConnectedError(InstrumentError):
    pass


class InvalidCommandError(InstrumentError):
    pass


class CommandTimeoutError(InstrumentError):
    """ A command's reply didn't arrive within the I/O timeout. """
    def __init__(self, command, response=''):
        msg = f"Command '{command}' timed out waiting for response. The device said: '{response}'"
        super().__init__(msg, response=response)


class UnparseableResponseError(InstrumentError):
    def __init__(self, response, expected=''):
        msg = f"Couldn't parse response. The buffer was: '{response}'"
        if expected:
            msg += f" (expected {expected})"
        super().__init__(msg, response=response)


Outcome = namedtuple("Outcome", "response, timed_out")


class ExactResponse:
    """ Accept only when the response equals `expected`, e.g., a terminator char or short string. """
    def __init__(self, expected):
        self.expected = expected

    def __call__(self, response):
        return response == self.expected

    def __repr__(self):
        return f"{self.__class__.__name__}({self.expected!r})"


class TerminatorSet:
    """ Accept when the last char of the response is any of `terminators`. """
    def __init__(self, terminators):
        self.terminators = frozenset(terminators)

    def __call__(self, response):
        return bool(response) and response[-1] in self.terminators

    def __repr__(self):
        return f"{self.__class__.__name__}({''.join(sorted(self.terminators))!r})"


class PatternResponse:
    """ Accept when the regex `pattern` is found in the response. """
    def __init__(self, pattern):
        self.pattern = re.compile(pattern)

    def __call__(self, response):
        return self.pattern.search(response) is not None

    def __repr__(self):
        return f"{self.__class__.__name__}({self.pattern.pattern!r})"


class _NoResponse:
    """ No response is expected. The command is sent once and trivially accepted. """
    def __call__(self, response):
        return True

    def __repr__(self):
        return "NO_RESPONSE"


NO_RESPONSE = _NoResponse()


class VisaChannel:
    """ Adapts an open pyvisa resource to the channel capability used by send_and_await().

        Reads consume everything pending and drop all whitespace, i.e., replies are scanned as one token.
    """
    def __init__(self, resource, encoding="ascii"):
        self.resource = resource
        self.encoding = encoding

    def is_open(self):
        if self.resource is None:
            return False
        try:
            self.resource.session
        except pyvisa.errors.InvalidSession:
            return False
        return True

    def write(self, command):
        # The resource appends its write_termination.
        self.resource.write(command)

    def bytes_pending(self):
        return self.resource.bytes_in_buffer

    def read_available(self):
        raw = self.resource.read_bytes(self.bytes_pending())
        return "".join(raw.decode(self.encoding, errors="replace").split())


def _validate(channel, command, retry_interval, timeout):
    if not channel.is_open():
        raise NotConnectedError("Channel is not open. Connect to the device first.")

    if not isinstance(command, str):
        raise InvalidCommandError(f"Command must be a string not '{type(command)}'.")

    if retry_interval <= 0:
        raise ValueError(f"retry_interval must be positive not '{retry_interval}'.")

    if timeout <= 0:
        raise ValueError(f"timeout must be positive not '{timeout}'.")


def send_and_await(channel, command, predicate=NO_RESPONSE, retry_interval=DEFAULT_RETRY_INTERVAL,
                   timeout=DEFAULT_TIMEOUT, resend=True):
    """ Send `command` and block until a response satisfying `predicate` is read or `timeout` elapses.

    WARNING: The command is re-sent every poll tick (when `resend` is True). Only use with commands that are safe
             to repeat, i.e., queries, absolute moves, or commands the device ignores whilst already executing them.
             Non-idempotent commands (e.g., relative moves) must be sent with `predicate=NO_RESPONSE`.

    :param channel: Open channel exposing write(), bytes_pending(), read_available() & is_open().
    :param command: str - Sent verbatim, the channel appends any terminator.
    :param predicate: callable(str) -> bool (optional) - ExactResponse, TerminatorSet, PatternResponse, or
                      NO_RESPONSE to send once and return immediately without polling.
    :param retry_interval: float (optional) - Seconds between re-sends and also between reads.
    :param timeout: float (optional) - Total seconds allowed for polling.
    :param resend: bool (optional) - If False the command is only sent once and the loop only polls for input.
    :return: Outcome(response, timed_out). The last response read is returned even when timed out.
    :raises: NotConnectedError, InvalidCommandError. Nothing is written in either case.
    """

    _validate(channel, command, retry_interval, timeout)

    channel.write(command)

    if predicate is None or predicate is NO_RESPONSE:
        log.debug(f"Sent '{command}' (no response expected)")
        return Outcome(NO_RESPONSE_EXPECTED, False)

    response = ''
    accepted = False
    t0 = time.perf_counter()
    while True:
        if resend:
            channel.write(command)

        time.sleep(retry_interval)

        # An empty poll leaves the last read in place.
        if channel.bytes_pending() > 0:
            response = channel.read_available()

        if predicate(response):
            accepted = True
            break

        if time.perf_counter() - t0 > timeout:
            break

    if accepted:
        log.debug(f"'{command}' accepted by {predicate!r} with response '{response}'")
    else:
        log.debug(f"'{command}' timed out after {timeout}s waiting for {predicate!r}. Last response: '{response}'")

    return Outcome(response, not accepted)


def extract_payload(response, addressed=False):
    """ Strip the address prefix from a reply of the form "<digits>:<payload>".

    :param response: str - Raw reply text.
    :param addressed: bool (optional) - Whether the device is addressed, i.e., the digits are mandatory.
    :return: str - The payload.
    :raises: UnparseableResponseError if the reply doesn't match.
    """
    pattern = ADDRESSED_REPLY_PATTERN if addressed else REPLY_PATTERN
    match = pattern.match(response)
    if match is None:
        raise UnparseableResponseError(response, expected="'<address>:<payload>'" if addressed else "':<payload>'")
    return match.group("payload")
