"""Instrument management service."""

from typing import Any, Dict, Optional
import logging

from ..config import settings
from ..exceptions import EviFluorError
from ..instrument import EviFluorModule, FluorometerInterface, SimulationFluorometer

logger = logging.getLogger(__name__)


class InstrumentManager:
    """Owns the connection to the single fluorometer module."""

    def __init__(self, instrument: Optional[FluorometerInterface] = None):
        self._instrument: Optional[FluorometerInterface] = instrument
        self._instrument_info: Optional[Dict[str, str]] = None
        if instrument is not None and instrument.is_connected():
            self._instrument_info = instrument.get_info()

    @property
    def instrument(self) -> Optional[FluorometerInterface]:
        """Get current instrument instance."""
        return self._instrument

    @property
    def is_connected(self) -> bool:
        """Check if instrument is connected."""
        return self._instrument is not None and self._instrument.is_connected()

    def require_instrument(self) -> FluorometerInterface:
        """Return the connected instrument or raise."""
        if not self.is_connected:
            raise EviFluorError("No instrument connected")
        return self._instrument

    def connect(self, instrument_type: str = "auto", address: Optional[str] = None) -> bool:
        """Connect to the fluorometer.

        Args:
            instrument_type: 'evifluor', 'simulation', or 'auto'
            address: VISA address for the real module

        Returns:
            True if connection successful
        """
        previous = self._instrument
        if self._instrument is not None and self._instrument.is_connected():
            self.disconnect()

        if instrument_type == "auto":
            instrument_type = "simulation" if settings.simulation_mode else "evifluor"

        try:
            if instrument_type == "simulation":
                if isinstance(previous, SimulationFluorometer):
                    self._instrument = previous
                else:
                    self._instrument = SimulationFluorometer()
                success = self._instrument.connect()
                connect_address = "SIMULATION"
            elif instrument_type == "evifluor":
                connect_address = address or settings.device_address
                if not connect_address:
                    raise ValueError("Device address required for eviFluor connection")
                self._instrument = EviFluorModule()
                success = self._instrument.connect(connect_address)
            else:
                raise ValueError(f"Unknown instrument type: {instrument_type}")

            if not success:
                self._instrument = None
                return False

            info = dict(self._instrument.get_info())
            info["address"] = connect_address
            self._instrument_info = info
            logger.info(
                "Connected to %s %s (serial %s)",
                info.get("manufacturer", "Unknown"),
                info.get("model", instrument_type),
                info.get("serial", "Unknown"),
            )
            return True

        except Exception as e:
            logger.error(f"Failed to connect to instrument: {e}")
            self._instrument = None
            self._instrument_info = None
            raise

    def disconnect(self) -> None:
        """Disconnect from instrument."""
        if self._instrument:
            try:
                self._instrument.disconnect()
                logger.info("Disconnected from instrument")
            except EviFluorError as e:
                logger.warning(f"Error during disconnect: {e}")
            finally:
                self._instrument = None
                self._instrument_info = None

    def get_info(self) -> Dict[str, Any]:
        """Get instrument information and status."""
        return {
            "connected": self.is_connected,
            "info": self._instrument_info,
            "simulation_mode": settings.simulation_mode,
        }

    def serial_number(self) -> str:
        """Serial number of the connected module."""
        if self._instrument_info and "serial" in self._instrument_info:
            return str(self._instrument_info["serial"])
        return self.require_instrument().get_info().get("serial", "Unknown")
