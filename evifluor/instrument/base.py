"""Abstract base class for fluorometer modules."""

from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any, Dict, List, Optional, Union

from ..data.models import (
    AutoGainResult,
    FirstAirMeasurementResult,
    FirstSampleMeasurementResult,
    SelfTestResult,
    SingleMeasurement,
)


class Index(IntEnum):
    """Register indices readable with ``V <index>``."""

    VERSION = 0
    SERIALNUMBER = 1
    HARDWARETYPE = 2
    PRODUCTIONNUMBER = 3
    LAST_MEASUREMENT_COUNT = 10
    AUTOGAIN_DELTA = 11
    CUVETTE_EMPTY_DELTA = 12
    CUVETTE_EMPTY_LED_POWER = 14
    CURRENT_LED470_POWER = 15
    CURRENT_LED470_POWER_MIN = 16
    CURRENT_LED470_POWER_MAX = 17


class DeviceErrorCode(IntEnum):
    """Numeric error codes reported as ``E <code>``."""

    OK = 0
    UNKNOWN_COMMAND = 1
    INVALID_PARAMETER = 2
    TIMEOUT = 3
    SREC_FLASH_WRITE_ERROR = 4
    SREC_UNSUPPORTED_TYPE = 5
    SREC_INVALID_CRC = 6
    SREC_INVALID_STRING = 7
    NO_MORE_LOGGING = 11


ERROR_TEXT = {
    DeviceErrorCode.OK: "OK",
    DeviceErrorCode.UNKNOWN_COMMAND: "Unknown command",
    DeviceErrorCode.INVALID_PARAMETER: "Invalid parameter",
    DeviceErrorCode.TIMEOUT: "Timeout",
    DeviceErrorCode.SREC_FLASH_WRITE_ERROR: "SREC: flash write error",
    DeviceErrorCode.SREC_UNSUPPORTED_TYPE: "SREC: unsupported type",
    DeviceErrorCode.SREC_INVALID_CRC: "SREC: invalid crc",
    DeviceErrorCode.SREC_INVALID_STRING: "SREC: invalid string",
    DeviceErrorCode.NO_MORE_LOGGING: "No more logging",
}


def error_to_text(code: int) -> str:
    try:
        return ERROR_TEXT[DeviceErrorCode(code)]
    except ValueError:
        return "Unknown error"


class FluorometerInterface(ABC):
    """Abstract interface for fluorometer modules."""

    @abstractmethod
    def connect(self, address: Optional[str] = None) -> bool:
        """Connect to the module.

        Args:
            address: VISA resource string or None for the simulation

        Returns:
            True if connection successful
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the module."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the module is connected."""
        pass

    @abstractmethod
    def get_info(self) -> Dict[str, str]:
        """Get module identification information.

        Returns:
            Dictionary with manufacturer, model, serial, firmware keys
        """
        pass

    @abstractmethod
    def get(self, index: Index) -> str:
        """Read a register.

        Args:
            index: Register index

        Returns:
            Raw register value as reported by the module
        """
        pass

    @abstractmethod
    def set(self, index: Index, value: Union[int, float, str]) -> None:
        """Write a register."""
        pass

    @abstractmethod
    def measure(self) -> SingleMeasurement:
        """Take one reading at the current LED power."""
        pass

    @abstractmethod
    def autogain(self, level: int) -> AutoGainResult:
        """Search an LED power that yields ``level`` mV.

        Args:
            level: Target signal level (0-2500 mV)
        """
        pass

    @abstractmethod
    def is_cuvette_holder_empty(self) -> bool:
        """Return True if no cuvette is in the holder."""
        pass

    @abstractmethod
    def baseline(self) -> None:
        """Clear the module's internal measurement memory."""
        pass

    @abstractmethod
    def self_test(self) -> SelfTestResult:
        """Run the module self test."""
        pass

    @abstractmethod
    def logging(self) -> List[str]:
        """Drain and return the log lines collected by the module."""
        pass

    # ------------------------------------------------------------------
    # Composite procedures
    # ------------------------------------------------------------------
    def first_air_measurement(self) -> FirstAirMeasurementResult:
        """Measure air at the minimum and at the maximum LED power."""

        power_min = int(self.get(Index.CURRENT_LED470_POWER_MIN))
        power_max = int(self.get(Index.CURRENT_LED470_POWER_MAX))

        self.set(Index.CURRENT_LED470_POWER, power_min)
        min_measurement = self.measure()

        self.set(Index.CURRENT_LED470_POWER, power_max)
        max_measurement = self.measure()

        return FirstAirMeasurementResult(min_measurement=min_measurement, max_measurement=max_measurement)

    def first_sample_measurement(self, level: int = 2000) -> FirstSampleMeasurementResult:
        """Run auto-gain for ``level`` and measure at the chosen LED power."""

        auto_gain_result = self.autogain(level)
        measurement = self.measure()
        return FirstSampleMeasurementResult(auto_gain_result=auto_gain_result, measurement=measurement)

    def technical_report(self) -> Dict[str, Any]:
        """Collect diagnostic data of the module."""

        info = self.get_info()
        return {
            "measure": self.first_air_measurement().model_dump(mode="json"),
            "selftest": self.self_test().model_dump(mode="json"),
            "serialnumber": info.get("serial", "Unknown"),
            "firmwareVersion": info.get("firmware", "Unknown"),
            "productionnumber": self.get(Index.PRODUCTIONNUMBER),
        }
