"""eviFluor module driver over a VISA serial or socket resource."""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pyvisa
from pyvisa.constants import StatusCode

from ..config import settings
from ..data.models import AutoGainResult, Channel, SelfTestResult, SingleMeasurement
from ..exceptions import DeviceError, DeviceTimeoutError, EviFluorError, ProtocolError
from .base import DeviceErrorCode, FluorometerInterface, Index, error_to_text

logger = logging.getLogger(__name__)


def _unquote(text: str) -> str:
    """Drop one enclosing pair of single or double quotes."""
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    return text


class EviFluorModule(FluorometerInterface):
    """Line protocol driver for the eviFluor fluorometer module.

    Every command is sent as ``:<CMD> <ARGS>`` and answered with a single
    line ``:<CMD> <VALUES>`` or ``:E <code>``.
    """

    def __init__(self, resource_manager: Optional[pyvisa.ResourceManager] = None):
        self._rm = resource_manager
        self._owns_rm = resource_manager is None
        self._instrument = None
        self._connected = False
        self._serial_number = "?"
        self._firmware_version = "?"

    def connect(self, address: Optional[str] = None) -> bool:
        """Open the VISA resource of the module.

        Args:
            address: VISA resource string (e.g., 'ASRL/dev/ttyACM0::INSTR' or
                'TCPIP::localhost::5025::SOCKET')
        """
        if address is None:
            raise ValueError("Address required for eviFluor connection")

        try:
            if self._rm is None:
                self._rm = pyvisa.ResourceManager(settings.visa_backend)
            self._instrument = self._rm.open_resource(address)
            self._instrument.timeout = settings.device_timeout
            self._instrument.read_termination = "\n"
            self._instrument.write_termination = "\n"
            if address.upper().startswith("ASRL"):
                self._instrument.baud_rate = settings.baud_rate
            self._connected = True

            self._serial_number = self.get(Index.SERIALNUMBER)
            self._firmware_version = self.get(Index.VERSION)
            logger.info("Connected to eviFluor %s (firmware %s) at %s",
                        self._serial_number, self._firmware_version, address)
            return True

        except (pyvisa.errors.Error, EviFluorError) as e:
            self.disconnect()
            raise EviFluorError(f"Failed to connect to eviFluor: {e}") from e

    def disconnect(self) -> None:
        """Close the resource and, if owned, the resource manager."""
        if self._instrument is not None:
            try:
                self._instrument.close()
            except pyvisa.errors.Error as e:
                logger.warning("Error closing eviFluor resource: %s", e)
            self._instrument = None

        if self._rm is not None and self._owns_rm:
            try:
                self._rm.close()
            except pyvisa.errors.Error as e:
                logger.warning("Error closing VISA resource manager: %s", e)
            self._rm = None

        self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self._instrument is not None

    def get_info(self) -> Dict[str, str]:
        if not self.is_connected():
            raise EviFluorError("Fluorometer not connected")

        return {
            "manufacturer": "HSE AG",
            "model": "eviFluor",
            "serial": self._serial_number,
            "firmware": self._firmware_version,
        }

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------
    def _exchange(self, tx: str) -> str:
        """Send one command and return the reply without the leading ``:``.

        Raises:
            DeviceError: The module answered with ``E <code>``.
            DeviceTimeoutError: No reply within the resource timeout.
            ProtocolError: The reply is malformed or belongs to another command.
        """
        if not self.is_connected():
            raise EviFluorError("Fluorometer not connected")

        line = f":{tx}"
        logger.debug("TX %s", line)
        try:
            rx = self._instrument.query(line)
        except pyvisa.errors.VisaIOError as e:
            if e.error_code == StatusCode.error_timeout:
                raise DeviceTimeoutError(f"No response to TX:{line} within {self._instrument.timeout} ms") from e
            raise ProtocolError(f"I/O error on TX:{line}: {e}") from e
        logger.debug("RX %s", rx)

        rx = rx.rstrip("\r\n")
        if not rx.strip():
            raise ProtocolError(f"Empty response to TX:{line}")
        if not rx.startswith(":"):
            raise ProtocolError(f"Response did not start with ':' {rx}")

        payload = rx[1:]
        parts = payload.split()
        if not parts:
            raise ProtocolError(f"Empty response to TX:{line}")

        if parts[0] == "E":
            try:
                code = int(parts[1])
            except (IndexError, ValueError):
                raise ProtocolError(f"Response of TX:{line} has an unknown error: {rx}") from None
            raise DeviceError(code, line, error_to_text(code))

        if parts[0] != tx.split()[0]:
            raise ProtocolError(f"Response for sent command '{line}' does not start with same command: '{rx}'")

        return payload

    def _command(self, tx: str) -> List[str]:
        """Send one command and return the reply tokens, command token first."""
        return self._exchange(tx).split()

    def _values(self, tx: str, count: int) -> List[str]:
        parts = self._command(tx)
        if len(parts) < count + 1:
            raise ProtocolError(f"Response to TX:{tx} has {len(parts) - 1} values, expected {count}")
        return parts[1:count + 1]

    @staticmethod
    def _parse(tx: str, values: Sequence[str], *types: Callable[[str], Any]) -> List[Any]:
        try:
            return [convert(value) for convert, value in zip(types, values)]
        except ValueError:
            raise ProtocolError(f"Response to TX:{tx} has malformed values: {' '.join(values)}") from None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def get(self, index: Index) -> str:
        return self._values(f"V {int(index)}", 1)[0]

    def set(self, index: Index, value: Union[int, float, str]) -> None:
        self._command(f"V {int(index)} {value}")

    def measure(self) -> SingleMeasurement:
        dark, value, led_power = self._parse("M", self._values("M", 3), float, float, int)
        return SingleMeasurement(channel470=Channel(dark=dark, value=value, led_power=led_power))

    def autogain(self, level: int) -> AutoGainResult:
        tx = f"C {level}"
        found, led_power = self._parse(tx, self._values(tx, 2), int, int)
        return AutoGainResult(found=found != 0, led_power=led_power)

    def is_cuvette_holder_empty(self) -> bool:
        (empty,) = self._parse("X", self._values("X", 1), int)
        return empty == 1

    def baseline(self) -> None:
        self._command("G")

    def self_test(self) -> SelfTestResult:
        (result,) = self._parse("Y", self._values("Y", 1), int)
        return SelfTestResult(result=result)

    def logging(self) -> List[str]:
        """Read log lines with ``Q`` until the module reports no more logging.

        The text after the ``Q`` token is kept verbatim, apart from one
        enclosing pair of quotes.
        """
        lines: List[str] = []
        while True:
            try:
                payload = self._exchange("Q")
            except DeviceError as e:
                if e.code == DeviceErrorCode.NO_MORE_LOGGING:
                    break
                raise
            lines.append(_unquote(payload.lstrip()[1:].lstrip(" \t")))
        return lines

    def serial_number(self) -> str:
        self._serial_number = self.get(Index.SERIALNUMBER)
        return self._serial_number

    def firmware_version(self) -> str:
        self._firmware_version = self.get(Index.VERSION)
        return self._firmware_version
