"""Configuration management for evifluor."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VerificationThresholds(BaseModel):
    """Limits used by the verification checks."""

    max_signal: float = Field(2499.0, description="Signal in mV at which a reading counts as saturated")
    expected_min_led_power: int = Field(32, ge=0, le=255)
    expected_max_led_power: int = Field(222, ge=0, le=255)
    expected_min_rfu: float = Field(4.5, description="Expected RFU with cuvette at expected_min_led_power")
    expected_max_rfu: float = Field(35.0, description="Expected RFU with cuvette at expected_max_led_power")
    rfu_threshold_multiplier: float = Field(2.0, gt=0)
    std_high_target: float = Field(2000.0, description="Signal in mV expected for the high standard")
    std_high_delta: float = Field(300.0, ge=0)
    threshold_negative_concentration: float = Field(-0.1)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="EVIFLUOR_",
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    debug: bool = False
    simulation_mode: bool = True

    # Data storage
    data_root: Path = Path("./data")

    # Device settings
    device_address: Optional[str] = None  # e.g. ASRL/dev/ttyACM0::INSTR
    device_timeout: int = 30000  # milliseconds
    baud_rate: int = 115200
    visa_backend: str = ""  # empty selects the default VISA library, "@py" selects pyvisa-py

    # Measurement defaults
    autogain_level: int = Field(2000, ge=0, le=2500)

    # Verification
    verification: VerificationThresholds = Field(default_factory=VerificationThresholds)


# Global settings instance
settings = Settings()
