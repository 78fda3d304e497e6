import pyvisa

from benchkit.benchkit_types import Result, returns_result
from benchkit.hardware.command_channel import CommandTimeoutError, InstrumentError, InvalidCommandError, NotConnectedError, \
    VisaChannel
from benchkit.hardware.resource_registry import RESOURCE_REGISTRY
from benchkit.interfaces.Instrument import Instrument
import benchkit.util


DEFAULT_POLL_TIMEOUT = 60  # This is not the comms timeout but that allowed for total polling duration (seconds).


class PyVisaInstrument(Instrument):
    """ Base for instruments connected through a VISA resource (USB-TMC, serial over USB, ...).

        Handles are opened through the process wide resource registry such that at most one handle is live per
        resource address.
    """

    instrument_lib = pyvisa

    VISA_BACKEND = "@py"
    ENCODING = "ascii"
    WRITE_TERMINATION = "\n"
    READ_TERMINATION = "\n"
    CLEAR_BEFORE_COMMAND = False  # Clear the device's I/O buffers before sending a command.
    WAIT_FOR_RESPONSE = False  # Default for send_command().

    visa_id = None
    channel = None

    def open_resource(self, **kwargs):
        """ Open (and register) the VISA resource self.visa_id. """
        resource_manager = self.instrument_lib.ResourceManager(self.VISA_BACKEND)

        def opener():
            return resource_manager.open_resource(self.visa_id,
                                                  encoding=self.ENCODING,
                                                  write_termination=self.WRITE_TERMINATION,
                                                  read_termination=self.READ_TERMINATION,
                                                  **kwargs)

        resource = RESOURCE_REGISTRY.acquire(self.visa_id, opener)
        self.channel = VisaChannel(resource, encoding=self.ENCODING)
        return resource

    def close_resource(self):
        try:
            if not RESOURCE_REGISTRY.release(self.visa_id, self.instrument):
                # Another instrument took over the address, and closed our handle.
                self.log.warning(f"{self.config_id}: '{self.visa_id}' was already released.")
        finally:
            self.channel = None

    def is_open(self):
        return self.instrument is not None and self.channel is not None and self.channel.is_open()

    def check_command(self, command):
        """ Raise if not connected or `command` isn't a str. """
        if not self.is_open():
            raise NotConnectedError(f"Not connected to '{self.config_id}'. Open it first, i.e., `with device:`.")

        if not isinstance(command, str):
            raise InvalidCommandError(f"Command must be a string not '{type(command)}'.")

    @returns_result
    def send_command(self, command, delay=0, wait_for_response=None):
        """ Send a command and optionally read the device's reply.

        :param command: str - The command to send.
        :param delay: int, float (optional) - Seconds to wait between the write and the read.
        :param wait_for_response: bool (optional) - Whether to read a reply. Defaults to self.WAIT_FOR_RESPONSE.
        :return: Result. On success Result.value holds the (stripped) reply, if read.
        """
        self.check_command(command)

        if wait_for_response is None:
            wait_for_response = self.WAIT_FOR_RESPONSE

        try:
            if self.CLEAR_BEFORE_COMMAND:
                self.instrument.clear()

            self.log.debug(f"{self.config_id} <- '{command}'")
            self.instrument.write(command)

            if delay:
                benchkit.util.sleep(delay)

            if not wait_for_response:
                return Result.success()

            reply = self.instrument.read().strip()
        except pyvisa.VisaIOError as error:
            if error.error_code == pyvisa.constants.StatusCode.error_timeout:
                raise CommandTimeoutError(command) from error
            raise InstrumentError(f"'{command}' failed: {error}") from error

        self.log.debug(f"{self.config_id} -> '{reply}'")
        return Result.success(response=reply, value=reply)

    def write(self, command, delay=0):
        """ Send a command without reading a reply. Raises if it fails. """
        result = self.send_command(command, delay=delay, wait_for_response=False)
        if not result.ok:
            raise InstrumentError(result.status, response=result.response)

    def query(self, command, delay=0):
        """ Send a query and return the reply (str). Raises if it fails. """
        result = self.send_command(command, delay=delay, wait_for_response=True)
        if not result.ok:
            raise InstrumentError(result.status, response=result.response)
        return result.value

    def query_float(self, command, delay=0):
        reply = self.query(command, delay=delay)
        try:
            return float(reply)
        except ValueError:
            raise InstrumentError(f"Expected a number in reply to '{command}' but got '{reply}'", response=reply) from None

