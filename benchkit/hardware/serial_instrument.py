import pyvisa

from benchkit.hardware import command_channel
from benchkit.hardware.command_channel import NO_RESPONSE, NotConnectedError
from benchkit.hardware.pyvisa_instrument import PyVisaInstrument


class SerialTextInstrument(PyVisaInstrument):
    """ Base for ASCII protocol devices on a (virtual) serial port that answer asynchronously.

        Commands are exchanged with command_channel.send_and_await(), i.e., re-sent every `retry_interval` seconds
        until an acceptable reply is read or `command_timeout` elapses.
    """

    BAUD_RATE = 9600
    DATA_BITS = 8
    STOP_BITS = pyvisa.constants.StopBits.one
    PARITY = pyvisa.constants.Parity.none
    WRITE_TERMINATION = "\r"
    READ_TERMINATION = "\r"
    IO_TIMEOUT = 100  # ms.

    def initialize(self, visa_id, retry_interval=command_channel.DEFAULT_RETRY_INTERVAL,
                   command_timeout=command_channel.DEFAULT_TIMEOUT, resend=True):
        self.visa_id = visa_id
        self.retry_interval = retry_interval
        self.command_timeout = command_timeout
        self.resend = resend

    def _open(self):
        return self.open_resource(baud_rate=self.BAUD_RATE,
                                  data_bits=self.DATA_BITS,
                                  stop_bits=self.STOP_BITS,
                                  parity=self.PARITY,
                                  timeout=self.IO_TIMEOUT)

    def _close(self):
        self.close_resource()

    def send_and_await(self, command, predicate=NO_RESPONSE, timeout=None):
        """ See command_channel.send_and_await(). Uses this device's retry interval & timeout.

        :return: command_channel.Outcome.
        """
        if self.channel is None:
            raise NotConnectedError(f"Not connected to '{self.config_id}'. Open it first, i.e., `with device:`.")

        timeout = self.command_timeout if timeout is None else timeout
        self.log.debug(f"{self.config_id} <- '{command}' (awaiting {predicate!r})")
        outcome = command_channel.send_and_await(self.channel,
                                                 command,
                                                 predicate=predicate,
                                                 retry_interval=self.retry_interval,
                                                 timeout=timeout,
                                                 resend=self.resend)
        self.log.debug(f"{self.config_id} -> '{outcome.response}' (timed out: {outcome.timed_out})")
        return outcome
