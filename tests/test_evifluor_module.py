"""Tests for the line protocol driver against a fake VISA resource."""

import pytest
from pyvisa.constants import StatusCode
from pyvisa.errors import VisaIOError

from conftest import FakeResource, FakeResourceManager
from evifluor.exceptions import DeviceError, DeviceTimeoutError, EviFluorError, ProtocolError
from evifluor.instrument import DeviceErrorCode, EviFluorModule, Index

CONNECT_REPLIES = [":V EF12345", ":V 1.4.2"]


def connected_module(replies, address="ASRL/dev/ttyACM0::INSTR"):
    resource = FakeResource(CONNECT_REPLIES + list(replies))
    module = EviFluorModule(resource_manager=FakeResourceManager(resource))
    module.connect(address)
    return module, resource


class TestConnection:
    def test_connect_configures_resource(self):
        module, resource = connected_module([])
        assert module.is_connected()
        assert resource.sent == [":V 1", ":V 0"]
        assert resource.timeout == 30000
        assert resource.read_termination == "\n"
        assert resource.baud_rate == 115200
        info = module.get_info()
        assert info["serial"] == "EF12345"
        assert info["firmware"] == "1.4.2"

    def test_socket_resource_has_no_baud_rate(self):
        module, resource = connected_module([], address="TCPIP::localhost::5025::SOCKET")
        assert module.is_connected()
        assert not hasattr(resource, "baud_rate")

    def test_connect_requires_address(self):
        with pytest.raises(ValueError):
            EviFluorModule(resource_manager=FakeResourceManager(FakeResource([]))).connect(None)

    def test_failed_connect_closes_resource(self):
        resource = FakeResource([":E 1"])
        module = EviFluorModule(resource_manager=FakeResourceManager(resource))
        with pytest.raises(EviFluorError):
            module.connect("ASRL1::INSTR")
        assert resource.closed
        assert not module.is_connected()

    def test_disconnect(self):
        module, resource = connected_module([])
        module.disconnect()
        assert resource.closed
        assert not module.is_connected()
        with pytest.raises(EviFluorError):
            module.measure()


class TestCommands:
    def test_measure(self):
        module, resource = connected_module([":M 15.5 1990.25 128"])
        m = module.measure()
        assert resource.sent[-1] == ":M"
        assert m.channel470.dark == 15.5
        assert m.channel470.value == 1990.25
        assert m.channel470.led_power == 128

    def test_autogain(self):
        module, resource = connected_module([":C 1 131", ":C 0 222"])
        first = module.autogain(2000)
        assert resource.sent[-1] == ":C 2000"
        assert first.found and first.led_power == 131
        second = module.autogain(2000)
        assert not second.found and second.led_power == 222

    def test_get_and_set(self):
        module, resource = connected_module([":V 32", ":V"])
        assert module.get(Index.CURRENT_LED470_POWER_MIN) == "32"
        module.set(Index.CURRENT_LED470_POWER, 32)
        assert resource.sent[-2:] == [":V 16", ":V 15 32"]

    def test_cuvette_holder(self):
        module, _ = connected_module([":X 1", ":X 0"])
        assert module.is_cuvette_holder_empty()
        assert not module.is_cuvette_holder_empty()

    def test_baseline_and_self_test(self):
        module, resource = connected_module([":G", ":Y 1"])
        module.baseline()
        result = module.self_test()
        assert resource.sent[-2:] == [":G", ":Y"]
        assert result.has_problem_with_communication()

    def test_first_air_measurement(self):
        module, resource = connected_module([
            ":V 32",
            ":V 222",
            ":V",
            ":M 15.0 29.4 32",
            ":V",
            ":M 15.0 114.9 222",
        ])
        result = module.first_air_measurement()
        assert resource.sent[2:] == [":V 16", ":V 17", ":V 15 32", ":M", ":V 15 222", ":M"]
        assert result.min_measurement.channel470.led_power == 32
        assert result.max_measurement.channel470.value == 114.9

    def test_first_sample_measurement(self):
        module, resource = connected_module([":C 1 128", ":M 15.0 1992.6 128"])
        result = module.first_sample_measurement(2000)
        assert resource.sent[2:] == [":C 2000", ":M"]
        assert result.auto_gain_result.led_power == 128
        assert result.measurement.channel470.value == 1992.6


class TestLogging:
    def test_drains_until_no_more_logging(self):
        module, resource = connected_module([
            ":Q autogain 2000 128",
            ':Q "autogain  done"',
            ":Q 'it''s  ok'",
            ":E 11",
        ])
        assert module.logging() == ["autogain 2000 128", "autogain  done", "it''s  ok"]
        assert resource.sent[2:] == [":Q", ":Q", ":Q", ":Q"]

    def test_line_keeps_inner_quotes(self):
        module, _ = connected_module([':Q led "470" ok', ":E 11"])
        assert module.logging() == ['led "470" ok']

    def test_empty_log(self):
        module, _ = connected_module([":E 11"])
        assert module.logging() == []

    def test_other_error_propagates(self):
        module, _ = connected_module([":Q first", ":E 3"])
        with pytest.raises(DeviceError) as excinfo:
            module.logging()
        assert excinfo.value.code == DeviceErrorCode.TIMEOUT


class TestErrors:
    def test_device_error(self):
        module, _ = connected_module([":E 2"])
        with pytest.raises(DeviceError) as excinfo:
            module.set(Index.CURRENT_LED470_POWER, 300)
        assert excinfo.value.code == DeviceErrorCode.INVALID_PARAMETER
        assert excinfo.value.text == "Invalid parameter"
        assert ":V 15 300" in str(excinfo.value)

    def test_device_error_is_protocol_error(self):
        module, _ = connected_module([":E 1"])
        with pytest.raises(ProtocolError):
            module.baseline()

    def test_unknown_error_code(self):
        module, _ = connected_module([":E 99"])
        with pytest.raises(DeviceError) as excinfo:
            module.measure()
        assert excinfo.value.text == "Unknown error"

    def test_malformed_error(self):
        module, _ = connected_module([":E"])
        with pytest.raises(ProtocolError):
            module.measure()

    def test_command_mismatch(self):
        module, _ = connected_module([":X 1"])
        with pytest.raises(ProtocolError) as excinfo:
            module.measure()
        assert not isinstance(excinfo.value, DeviceError)

    def test_missing_colon(self):
        module, _ = connected_module(["M 1 2 3"])
        with pytest.raises(ProtocolError):
            module.measure()

    def test_short_reply(self):
        module, _ = connected_module([":M 1 2"])
        with pytest.raises(ProtocolError):
            module.measure()

    @pytest.mark.parametrize(
        "call,reply",
        [
            (lambda m: m.measure(), ":M 15.0 abc 128"),
            (lambda m: m.measure(), ":M 15.0 1990.0 12.5"),
            (lambda m: m.autogain(2000), ":C yes 128"),
            (lambda m: m.is_cuvette_holder_empty(), ":X maybe"),
            (lambda m: m.self_test(), ":Y 0x1"),
        ],
    )
    def test_malformed_values(self, call, reply):
        module, _ = connected_module([reply])
        with pytest.raises(ProtocolError) as excinfo:
            call(module)
        assert not isinstance(excinfo.value, DeviceError)

    def test_timeout(self):
        module, _ = connected_module([VisaIOError(StatusCode.error_timeout)])
        with pytest.raises(DeviceTimeoutError) as excinfo:
            module.measure()
        assert isinstance(excinfo.value, TimeoutError)

    def test_technical_report(self):
        module, _ = connected_module([
            ":V 32", ":V 222", ":V", ":M 15.0 29.4 32", ":V", ":M 15.0 114.9 222",
            ":Y 0",
            ":V P-0042",
        ])
        report = module.technical_report()
        assert report["serialnumber"] == "EF12345"
        assert report["firmwareVersion"] == "1.4.2"
        assert report["productionnumber"] == "P-0042"
        assert report["selftest"] == {"result": 0}
        assert report["measure"]["min_measurement"] == {"dark": 15.0, "value": 29.4, "ledPower": 32}
