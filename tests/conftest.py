"""Shared fixtures for the evifluor test suite."""

from typing import List, Union

import pytest

from evifluor.config import VerificationThresholds
from evifluor.data.models import Channel, Measurement, SingleMeasurement
from evifluor.instrument import SimulationFluorometer
from evifluor.services import InstrumentManager


def single(dark: float = 0.0, value: float = 0.0, led_power: int = 128) -> SingleMeasurement:
    return SingleMeasurement(channel470=Channel(dark=dark, value=value, led_power=led_power))


def measurement(value: float, comment: str = "") -> Measurement:
    """A measurement whose corrected value is ``value``."""
    return Measurement(air=single(10.0, 110.0), sample=single(10.0, 110.0 + value), comment=comment)


class FakeResource:
    """Stands in for a pyvisa message based resource.

    Replies are served in order; an exception in the script is raised
    instead of being returned.
    """

    def __init__(self, replies: List[Union[str, Exception]]):
        self.replies = list(replies)
        self.sent: List[str] = []
        self.timeout = None
        self.read_termination = None
        self.write_termination = None
        self.closed = False

    def query(self, message: str) -> str:
        self.sent.append(message)
        if not self.replies:
            raise AssertionError(f"Unexpected command {message}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def close(self) -> None:
        self.closed = True


class FakeResourceManager:
    def __init__(self, resource: FakeResource):
        self.resource = resource
        self.opened: List[str] = []

    def open_resource(self, address: str) -> FakeResource:
        self.opened.append(address)
        return self.resource

    def close(self) -> None:
        pass


@pytest.fixture
def thresholds():
    return VerificationThresholds()


@pytest.fixture
def simulator():
    sim = SimulationFluorometer(serial="SIM0001")
    sim.connect()
    return sim


@pytest.fixture
def manager(simulator):
    return InstrumentManager(simulator)
