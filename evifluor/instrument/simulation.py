"""Simulated fluorometer for development and testing."""

from __future__ import annotations

from typing import Dict, List, Optional, Union

from ..data.models import AutoGainResult, Channel, SelfTestResult, SingleMeasurement
from ..exceptions import DeviceError, EviFluorError
from .base import DeviceErrorCode, FluorometerInterface, Index, error_to_text

MAX_SIGNAL = 2500.0


class OpticalModel:
    """Deterministic optical model of the 470 nm channel.

    ``value = dark + background(power) + sensitivity * concentration * power``
    where the background is higher with a cuvette in the optical path.
    """

    def __init__(
        self,
        dark: float = 15.0,
        air_slope: float = 0.05,
        cuvette_slope: float = 0.45,
        sensitivity: float = 1.5,
    ) -> None:
        self.dark = dark
        self.air_slope = air_slope
        self.cuvette_slope = cuvette_slope
        self.sensitivity = sensitivity

    def slope(self, cuvette: bool, concentration: float) -> float:
        if not cuvette:
            return self.air_slope
        return self.cuvette_slope + self.sensitivity * concentration

    def reading(self, led_power: int, cuvette: bool, concentration: float) -> Channel:
        value = self.dark + self.slope(cuvette, concentration) * led_power
        return Channel(dark=self.dark, value=min(value, MAX_SIGNAL), led_power=led_power)


class SimulationFluorometer(FluorometerInterface):
    """In-process eviFluor with a register map and a loaded cuvette."""

    def __init__(self, serial: str = "SIM0001", model: Optional[OpticalModel] = None) -> None:
        self._connected = False
        self._model = model or OpticalModel()
        self._cuvette = True
        self._concentration = 0.0
        self._log_lines: List[str] = []
        self._self_test_result = 0
        self._registers: Dict[Index, Union[int, str]] = {
            Index.VERSION: "1.0.0",
            Index.SERIALNUMBER: serial,
            Index.HARDWARETYPE: 1,
            Index.PRODUCTIONNUMBER: "P-SIM",
            Index.LAST_MEASUREMENT_COUNT: 0,
            Index.AUTOGAIN_DELTA: 50,
            Index.CUVETTE_EMPTY_DELTA: 20,
            Index.CUVETTE_EMPTY_LED_POWER: 128,
            Index.CURRENT_LED470_POWER: 128,
            Index.CURRENT_LED470_POWER_MIN: 32,
            Index.CURRENT_LED470_POWER_MAX: 222,
        }

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def connect(self, address: Optional[str] = None) -> bool:
        self._connected = True
        return True

    def disconnect(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def get_info(self) -> Dict[str, str]:
        return {
            "manufacturer": "Simulated",
            "model": "eviFluor-SIM",
            "serial": str(self._registers[Index.SERIALNUMBER]),
            "firmware": str(self._registers[Index.VERSION]),
        }

    # ------------------------------------------------------------------
    # Simulation controls
    # ------------------------------------------------------------------
    def insert_cuvette(self, concentration: float = 0.0) -> None:
        """Place a cuvette holding ``concentration`` into the holder."""

        self._cuvette = True
        self._concentration = concentration

    def remove_cuvette(self) -> None:
        self._cuvette = False
        self._concentration = 0.0

    def set_self_test_result(self, result: int) -> None:
        self._self_test_result = result

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def get(self, index: Index) -> str:
        self._ensure_connected()
        try:
            return str(self._registers[Index(index)])
        except (KeyError, ValueError):
            raise self._error(DeviceErrorCode.INVALID_PARAMETER, f"V {int(index)}") from None

    def set(self, index: Index, value: Union[int, float, str]) -> None:
        self._ensure_connected()
        tx = f"V {int(index)} {value}"
        if Index(index) == Index.CURRENT_LED470_POWER:
            power = int(value)
            if not 0 <= power <= 255:
                raise self._error(DeviceErrorCode.INVALID_PARAMETER, tx)
            self._registers[Index.CURRENT_LED470_POWER] = power
        elif Index(index) in (Index.SERIALNUMBER, Index.VERSION, Index.PRODUCTIONNUMBER):
            raise self._error(DeviceErrorCode.INVALID_PARAMETER, tx)
        else:
            self._registers[Index(index)] = value

    def measure(self) -> SingleMeasurement:
        self._ensure_connected()
        led_power = int(self._registers[Index.CURRENT_LED470_POWER])
        channel = self._model.reading(led_power, self._cuvette, self._concentration)
        self._registers[Index.LAST_MEASUREMENT_COUNT] = int(self._registers[Index.LAST_MEASUREMENT_COUNT]) + 1
        self._log_lines.append(f"M {channel.dark:.1f} {channel.value:.1f} {led_power}")
        return SingleMeasurement(channel470=channel)

    def autogain(self, level: int) -> AutoGainResult:
        self._ensure_connected()
        if not 0 <= level <= MAX_SIGNAL:
            raise self._error(DeviceErrorCode.INVALID_PARAMETER, f"C {level}")

        power_min = int(self._registers[Index.CURRENT_LED470_POWER_MIN])
        power_max = int(self._registers[Index.CURRENT_LED470_POWER_MAX])
        slope = self._model.slope(self._cuvette, self._concentration)
        if slope > 0:
            power = max(power_min, min(power_max, round((level - self._model.dark) / slope)))
        else:
            power = power_max

        self._registers[Index.CURRENT_LED470_POWER] = power
        reached = self._model.reading(power, self._cuvette, self._concentration).value
        found = abs(reached - level) <= int(self._registers[Index.AUTOGAIN_DELTA])
        self._log_lines.append(f"C {level} -> {power} {reached:.1f}")
        return AutoGainResult(found=found, led_power=power)

    def is_cuvette_holder_empty(self) -> bool:
        self._ensure_connected()
        return not self._cuvette

    def baseline(self) -> None:
        self._ensure_connected()
        self._registers[Index.LAST_MEASUREMENT_COUNT] = 0

    def self_test(self) -> SelfTestResult:
        self._ensure_connected()
        return SelfTestResult(result=self._self_test_result)

    def logging(self) -> List[str]:
        self._ensure_connected()
        lines, self._log_lines = self._log_lines, []
        return lines

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _ensure_connected(self) -> None:
        if not self._connected:
            raise EviFluorError("Fluorometer not connected")

    @staticmethod
    def _error(code: DeviceErrorCode, tx: str) -> DeviceError:
        return DeviceError(int(code), f":{tx}", error_to_text(code))
