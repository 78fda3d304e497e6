from enum import Enum
import re

from benchkit.benchkit_types import PumpStatus, Result, returns_result, to_value, units
from benchkit.hardware.command_channel import InstrumentError, TerminatorSet, UnparseableResponseError, extract_payload
from benchkit.hardware.pyvisa_instrument import DEFAULT_POLL_TIMEOUT
from benchkit.hardware.serial_instrument import SerialTextInstrument
from benchkit.interfaces.SyringePump import SyringePump
import benchkit.util


class KDScientific110(SerialTextInstrument, SyringePump):
    """ KD Scientific 110 syringe pump over a (virtualized) serial connection. It's actually over USB.

        Every reply ends with a prompt char indicating the pump's state (see PumpStatus).
        Replies to queries carry a payload: "[address]:<payload><prompt>", e.g., "0:12.07mm:".
    """

    PROMPTS = TerminatorSet(status.value for status in PumpStatus)

    class Commands(Enum):
        RUN = "RUN"
        STOP = "STP"
        DIAMETER = "DIA"
        RATE = "RAT"
        VOLUME = "VOL"
        CLEAR_VOLUME = "CLV"

    class RateUnits(Enum):
        ML_PER_MIN = "MM"
        ML_PER_HR = "MH"
        UL_PER_MIN = "UM"
        UL_PER_HR = "UH"

        @property
        def unit(self):
            return {"MM": units.ml / units.min,
                    "MH": units.ml / units.hour,
                    "UM": units.ul / units.min,
                    "UH": units.ul / units.hour}[self.value]

    # The last complete payload reply in the (possibly repeated) response.
    LAST_REPLY_PATTERN = re.compile(r"\d*:[^:<>*]*[:<>*]$")
    NUMBER_PATTERN = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)")

    def initialize(self, visa_id="ASRL5::INSTR", addressed=False, retry_interval=0.1, command_timeout=2, resend=True):
        """ Initializes class instance, but doesn't -- and shouldn't -- open a connection to the hardware.

        :param addressed: bool (optional) - Whether replies are prefixed with the pump's (daisy chain) address.
        """
        super().initialize(visa_id=visa_id,
                           retry_interval=retry_interval,
                           command_timeout=command_timeout,
                           resend=resend)
        self.addressed = addressed

    @returns_result
    def send_kds_command(self, command):
        """ Pass an arbitrary command to the pump and wait for its prompt.

        WARNING: The command is re-sent until a prompt is read. Only send commands that are safe to repeat.
        """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        outcome = self.send_and_await(command, predicate=self.PROMPTS)
        if outcome.timed_out:
            return Result.failure(f"Command timed out, waiting for response. Pump said: '{outcome.response}'",
                                  response=outcome.response)
        return Result.success(response=outcome.response)

    def parse_status(self, response):
        try:
            return PumpStatus(response[-1:])
        except ValueError:
            raise UnparseableResponseError(response, expected="a prompt") from None

    def parse_payload(self, response):
        """ Return the payload of the last reply in `response`, e.g., "0:12.07mm:" -> "12.07mm". """
        match = self.LAST_REPLY_PATTERN.search(response)
        if match is None:
            raise UnparseableResponseError(response, expected="'[address]:<payload><prompt>'")
        # Drop the prompt.
        return extract_payload(match.group(0), addressed=self.addressed)[:-1]

    def parse_number(self, payload):
        match = self.NUMBER_PATTERN.match(payload)
        if match is None:
            raise UnparseableResponseError(payload, expected="a number")
        return float(match.group(0))

    @returns_result
    def get_status(self):
        """ :return: Result. Result.value := PumpStatus. """
        result = self.send_kds_command("")
        if not result.ok:
            return result

        status = self.parse_status(result.response)
        if status is PumpStatus.STALLED:
            self.log.warning(f"{self.config_id}: pump stalled.")
        return Result.success(response=result.response, value=status)

    @returns_result
    def query(self, command):
        """ Send a query and return its payload, i.e., Result.value := payload (str). """
        result = self.send_kds_command(command)
        if not result.ok:
            return result
        return Result.success(response=result.response, value=self.parse_payload(result.response))

    @returns_result
    def run(self):
        result = self.send_kds_command(self.Commands.RUN.value)
        if result.ok:
            self.log.info(f"{self.config_id}: running")
        return result

    @returns_result
    def stop(self):
        result = self.send_kds_command(self.Commands.STOP.value)
        if result.ok:
            self.log.info(f"{self.config_id}: stopped")
        return result

    @returns_result
    def set_diameter(self, diameter):
        """ :param diameter: int, float, Quantity - Syringe inner diameter (mm). """
        diameter = to_value(diameter, units.mm)
        if diameter <= 0:
            return Result.failure(f"Syringe diameter must be positive not '{diameter}'.")
        return self.send_kds_command(f"{self.Commands.DIAMETER.value} {diameter:.4g}")

    @returns_result
    def get_diameter(self):
        """ :return: Result. Result.value := diameter (mm). """
        result = self.query(self.Commands.DIAMETER.value)
        if not result.ok:
            return result
        return result._replace(value=self.parse_number(result.value))

    @returns_result
    def set_rate(self, rate, units=RateUnits.ML_PER_HR):
        """ Set the flow rate.

        :param rate: int, float, Quantity - Flow rate. Quantities are converted to `units`.
        :param units: RateUnits, str (optional) - e.g., RateUnits.ML_PER_HR or "MH".
        """
        try:
            rate_units = self.RateUnits(units)
        except ValueError:
            return Result.failure(f"Unknown rate units '{units}'. Use one of {[item.value for item in self.RateUnits]}.")

        rate = to_value(rate, rate_units.unit)
        if rate <= 0:
            return Result.failure(f"Flow rate must be positive not '{rate}'.")
        return self.send_kds_command(f"{self.Commands.RATE.value} {rate:.4g} {rate_units.value}")

    @returns_result
    def get_rate(self):
        """ :return: Result. Result.value := rate (in the units last set). """
        result = self.query(self.Commands.RATE.value)
        if not result.ok:
            return result
        return result._replace(value=self.parse_number(result.value))

    @returns_result
    def set_volume(self, volume):
        """ Set the target volume at which pumping stops.

        :param volume: int, float, Quantity - Target volume (ml).
        """
        volume = to_value(volume, units.ml)
        if volume <= 0:
            return Result.failure(f"Target volume must be positive not '{volume}'.")
        return self.send_kds_command(f"{self.Commands.VOLUME.value} {volume:.4g}")

    @returns_result
    def clear_volume(self):
        """ Reset the accumulated (pumped) volume. """
        return self.send_kds_command(self.Commands.CLEAR_VOLUME.value)

    @returns_result
    def wait_until_idle(self, timeout=DEFAULT_POLL_TIMEOUT, poll_interval=0.5):
        """ Block until the pump stops, i.e., reaches its target volume, is stopped or stalls.

        :return: Result. Result.value := PumpStatus, the last status read (also when timed out).
        """
        last = Result.failure("Status never read.")

        def status():
            nonlocal last
            last = self.get_status()
            if not last.ok:
                # Stop polling, a closed or silent pump won't become idle.
                raise InstrumentError(last.status, response=last.response)
            return last.value

        try:
            final = benchkit.util.poll_status((PumpStatus.IDLE, PumpStatus.STALLED),
                                              status,
                                              timeout=timeout,
                                              poll_interval=poll_interval)
        except TimeoutError as error:
            return Result.failure(error, response=last.response, value=last.value)
        return Result.success(response=last.response, value=final)
