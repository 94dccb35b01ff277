# tests/components/test_components.py
import math

import pytest

from circuitsim_core import ureg
from circuitsim_core.components import ComponentError, PinMode
from circuitsim_core.components.base_enums import StampBehavior
from circuitsim_core.components.capabilities import IOverloadMonitor, IStampContributor
from circuitsim_core.components.elements import (
    COPPER_RESISTIVITY_OHM_M, LED, LED_OFF_RESISTANCE_OHM, LEDColor, Resistor, Wire,
    awg_diameter_m, polyline_length_m,
)
from circuitsim_core.components.pins import DriverPin, SensePin, voltage_to_adc
from circuitsim_core.constants import IDEAL_RESISTANCE_OHM


def stamp_of(component):
    return component.get_capability(IStampContributor).get_stamp(component)


class TestResistor:

    @pytest.mark.parametrize("value, expected", [
        (220, 220.0),
        (4.7, 4.7),
        ("1 kohm", 1000.0),
        ("2.2 Mohm", 2.2e6),
        ("330", 330.0),
        (10 * ureg.ohm, 10.0),
    ])
    def test_accepts_numbers_and_unit_strings(self, value, expected):
        assert Resistor(value).get_resistance() == pytest.approx(expected)

    @pytest.mark.parametrize("value, expected_msg", [
        (0, "must be positive"),
        (-50, "must be positive"),
        (float("inf"), "must be positive and finite"),
        ("5 meter", "Validation failed for parameter 'resistance'"),
        ("5 bananas", "Validation failed for parameter 'resistance'"),
    ])
    def test_rejects_invalid_values(self, value, expected_msg):
        with pytest.raises(ComponentError) as excinfo:
            Resistor(value, instance_id="R_BAD")
        assert expected_msg in excinfo.value.details
        assert excinfo.value.component_id == "R_BAD"
        assert "Component Parameter Error" in excinfo.value.get_diagnostic_report()

    def test_set_resistance(self):
        resistor = Resistor(100.0)
        resistor.resistance = "470 ohm"
        assert resistor.get_resistance() == pytest.approx(470.0)
        with pytest.raises(ComponentError):
            resistor.set_resistance(-1)
        assert resistor.get_resistance() == pytest.approx(470.0)


class TestWire:

    def test_default_wire_is_ideal(self):
        wire = Wire()
        assert wire.gauge == 22
        assert wire.length == 0.0
        assert wire.get_resistance() == IDEAL_RESISTANCE_OHM

    def test_awg_diameter(self):
        # AWG 36 is defined as 0.127 mm; every 6 gauges roughly doubles the diameter.
        assert awg_diameter_m(36) == pytest.approx(0.127e-3)
        assert awg_diameter_m(22) == pytest.approx(0.6438e-3, rel=1e-3)

    def test_calculated_resistance(self):
        wire = Wire(length="1 m", gauge=22, use_calculated_resistance=True)
        area = math.pi * (awg_diameter_m(22) / 2.0) ** 2
        assert wire.get_resistance() == pytest.approx(COPPER_RESISTIVITY_OHM_M / area)
        assert wire.get_resistance() == pytest.approx(0.0516, rel=1e-2)

    def test_calculated_resistance_ignored_unless_enabled(self):
        wire = Wire(length=1.0, gauge=22)
        assert wire.get_resistance() == IDEAL_RESISTANCE_OHM
        assert wire.calculate_resistance() > IDEAL_RESISTANCE_OHM

    def test_zero_length_is_ideal(self):
        wire = Wire(use_calculated_resistance=True)
        assert wire.get_resistance() == IDEAL_RESISTANCE_OHM

    def test_length_units(self):
        assert Wire(length="15 cm").length == pytest.approx(0.15)
        with pytest.raises(ComponentError, match="Invalid wire length"):
            Wire(length="3 volt")
        with pytest.raises(ComponentError, match="non-negative"):
            Wire(length=-1.0)

    @pytest.mark.parametrize("gauge", [0, 51, 22.5, True, "22"])
    def test_rejects_invalid_gauge(self, gauge):
        with pytest.raises(ComponentError, match="Wire gauge must be an integer AWG"):
            Wire(gauge=gauge)

    def test_polyline_points_set_length(self):
        wire = Wire()
        wire.set_points([(0.0, 0.0), (30.0, 40.0)])
        assert wire.length == pytest.approx(0.05)
        wire.add_point((30.0, 140.0))
        assert wire.length == pytest.approx(0.15)
        assert wire.points == [(0.0, 0.0), (30.0, 40.0), (30.0, 140.0)]
        wire.clear_points()
        assert wire.points == []
        assert wire.length == 0.0

    def test_polyline_length_of_degenerate_input(self):
        assert polyline_length_m([]) == 0.0
        assert polyline_length_m([(5.0, 5.0)]) == 0.0


class TestLED:

    def test_color_presets(self):
        assert LED(LEDColor.RED).forward_voltage == 1.8
        assert LED(LEDColor.GREEN).forward_voltage == 2.2
        assert LED(LEDColor.YELLOW).forward_voltage == 2.0
        blue = LED(LEDColor.BLUE)
        assert blue.forward_voltage == 3.2
        assert blue.max_current == 0.020

    def test_overrides_and_set_color(self):
        led = LED(LEDColor.RED, forward_voltage=2.1, max_current="30 mA")
        assert led.forward_voltage == pytest.approx(2.1)
        assert led.max_current == pytest.approx(0.03)
        led.set_color(LEDColor.WHITE)
        assert led.color is LEDColor.WHITE
        assert led.forward_voltage == 3.2
        with pytest.raises(ComponentError):
            led.set_forward_voltage(0)

    def test_create_standard(self, caplog):
        green = LED.create_standard("green")
        assert green.color is LEDColor.GREEN
        assert green.name == "green LED"

        unknown = LED.create_standard("purple")
        assert unknown.color is LEDColor.RED
        assert "Unknown LED type 'purple' - defaulting to red" in caplog.text

    def test_starts_off(self):
        led = LED()
        assert not led.is_on
        assert led.brightness == 0.0
        assert led.get_resistance() == LED_OFF_RESISTANCE_OHM

    def test_turns_on_when_forward_biased_above_threshold(self):
        led = LED(LEDColor.RED)
        led.update_state(2.0, 0.01)
        assert led.is_on
        assert led.brightness == pytest.approx(0.5)
        assert led.get_resistance() == pytest.approx(1.8 / 0.01 + 25.0)

    @pytest.mark.parametrize("voltage, current", [
        (1.0, 0.01),      # below forward voltage
        (-3.0, -0.01),    # reverse biased
        (2.0, 5e-7),      # below minimum conduction current
        (2.0, -0.01),     # current against the voltage
    ])
    def test_stays_off(self, voltage, current):
        led = LED(LEDColor.RED)
        led.update_state(voltage, current)
        assert not led.is_on
        assert led.brightness == 0.0
        assert led.get_resistance() == LED_OFF_RESISTANCE_OHM

    def test_brightness_curve(self):
        led = LED(LEDColor.RED)
        assert led.calculate_brightness(0.0) == 0.0
        assert led.calculate_brightness(0.005) == pytest.approx(0.25)
        assert led.calculate_brightness(0.020) == pytest.approx(1.0)
        # Above the nominal forward current brightness saturates.
        assert led.calculate_brightness(0.024) == 1.0

    def test_dynamic_resistance(self):
        led = LED(LEDColor.BLUE)
        assert led.calculate_dynamic_resistance(1e-7) == LED_OFF_RESISTANCE_OHM
        assert led.calculate_dynamic_resistance(0.016) == pytest.approx(3.2 / 0.016 + 25.0)

    def test_overcurrent_latches_a_single_notice(self):
        led = LED(LEDColor.RED)
        monitor = led.get_capability(IOverloadMonitor)

        led.update_state(2.5, 0.03)
        assert led.is_overloaded
        notice = monitor.consume_overload_notice(led)
        assert "exceeds max 25.00 mA" in notice
        assert monitor.consume_overload_notice(led) is None

        # Staying overloaded does not produce a second notice.
        led.update_state(2.5, 0.031)
        assert monitor.is_overloaded(led)
        assert monitor.consume_overload_notice(led) is None

        led.update_state(2.0, 0.01)
        assert not led.is_overloaded

    def test_power_overload(self):
        led = LED(LEDColor.RED, max_current=1.0)
        led.update_state(3.0, 0.05)
        assert led.is_overloaded
        assert "thermal limit" in led.get_capability(IOverloadMonitor).consume_overload_notice(led)

    def test_reset(self):
        led = LED()
        led.update_state(2.5, 0.03)
        led.reset()
        assert not led.is_on
        assert not led.is_overloaded
        assert led.get_current() == 0.0
        assert led.get_resistance() == LED_OFF_RESISTANCE_OHM


class TestDriverPin:

    def test_defaults(self):
        pin = DriverPin(pin_number=7)
        assert pin.name == "Pin 7"
        assert pin.mode is PinMode.INPUT
        assert not pin.supports_pwm
        assert DriverPin(pin_number=9).supports_pwm
        assert DriverPin(pin_number=7, supports_pwm=True).supports_pwm

    def test_writes_require_output_mode(self, caplog):
        pin = DriverPin(pin_number=13)
        assert not pin.digital_write(True)
        assert not pin.write(3.3)
        assert pin.output_voltage == 0.0
        assert "not in OUTPUT mode" in caplog.text

    def test_digital_write(self):
        pin = DriverPin(pin_number=13, mode=PinMode.OUTPUT)
        assert pin.digital_write(True)
        assert pin.output_voltage == 5.0
        assert pin.read() == 5.0
        assert pin.digital_write(False)
        assert pin.output_voltage == 0.0

    def test_analog_write_clamps(self):
        pin = DriverPin(mode=PinMode.ANALOG_OUTPUT)
        assert not DriverPin(mode=PinMode.OUTPUT).analog_write(1.0)
        assert pin.analog_write(7.0)
        assert pin.output_voltage == 5.0
        assert pin.analog_write(-1.0)
        assert pin.output_voltage == 0.0

    def test_pwm_write(self):
        pin = DriverPin(pin_number=3, mode=PinMode.OUTPUT)
        assert pin.pwm_write(128)
        assert pin.pwm_duty == 128
        assert pin.output_voltage == pytest.approx(128 / 255 * 5.0)
        assert pin.pwm_write(300)
        assert pin.pwm_duty == 255
        assert not DriverPin(pin_number=13, mode=PinMode.OUTPUT).pwm_write(128)
        assert not DriverPin(pin_number=3, mode=PinMode.INPUT).pwm_write(128)

    def test_leaving_output_mode_clears_output(self):
        pin = DriverPin(pin_number=3, mode=PinMode.OUTPUT)
        pin.pwm_write(200)
        pin.set_mode(PinMode.INPUT)
        assert pin.output_voltage == 0.0
        assert pin.pwm_duty == 0

    def test_reads(self):
        pin = DriverPin(mode=PinMode.ANALOG_INPUT)
        pin.update_state(2.5, 0.0)
        assert pin.read() == 2.5
        assert pin.analog_read() == 511
        assert not pin.digital_read()
        pin.update_state(3.0, 0.0)
        assert pin.digital_read()

        output = DriverPin(mode=PinMode.OUTPUT)
        assert not output.digital_read()
        assert output.analog_read() == 0

    @pytest.mark.parametrize("mode, high, behavior, conductance, voltage", [
        (PinMode.OUTPUT, True, StampBehavior.VOLTAGE_SOURCE, 0.0, 5.0),
        (PinMode.OUTPUT, False, StampBehavior.CONDUCTANCE, 1.0 / 25.0, 0.0),
        (PinMode.INPUT, False, StampBehavior.CONDUCTANCE, 1.0e-9, 0.0),
        (PinMode.ANALOG_INPUT, False, StampBehavior.CONDUCTANCE, 1.0e-9, 0.0),
        (PinMode.INPUT_PULLUP, False, StampBehavior.CONDUCTANCE_TO_SUPPLY, 1.0 / 50e3, 5.0),
    ])
    def test_stamp_per_mode(self, mode, high, behavior, conductance, voltage):
        pin = DriverPin(pin_number=13, mode=mode)
        if high:
            pin.digital_write(True)
        stamp = stamp_of(pin)
        assert stamp.behavior is behavior
        assert stamp.conductance == pytest.approx(conductance)
        assert stamp.voltage == pytest.approx(voltage)

    def test_tiny_output_is_not_a_source(self):
        pin = DriverPin(mode=PinMode.OUTPUT)
        pin.write(0.005)
        assert not pin.acts_as_source
        assert stamp_of(pin).behavior is StampBehavior.CONDUCTANCE

    def test_output_overload(self):
        pin = DriverPin(mode=PinMode.OUTPUT)
        pin.update_state(5.0, 0.05)
        assert pin.is_overloaded
        assert "exceeds max 40.00 mA" in pin.get_capability(IOverloadMonitor).consume_overload_notice(pin)

        pin.set_mode(PinMode.INPUT)
        pin.update_state(5.0, 0.05)
        assert not pin.is_overloaded

    def test_reset(self):
        pin = DriverPin(mode=PinMode.OUTPUT)
        pin.digital_write(True)
        pin.reset()
        assert pin.output_voltage == 0.0
        assert pin.mode is PinMode.OUTPUT


class TestSensePin:

    def test_reads_solved_voltage(self):
        probe = SensePin()
        assert probe.get_resistance() == 1.0e9
        probe.update_state(4.0, 0.0)
        assert probe.read() == 4.0
        assert probe.digital_read()
        assert probe.analog_read() == voltage_to_adc(4.0)

    def test_voltage_to_adc_clamps(self):
        assert voltage_to_adc(6.0) == 1023
        assert voltage_to_adc(-1.0) == 0
        assert voltage_to_adc(5.0) == 1023
        assert voltage_to_adc(1.0, reference=3.3, bits=12) == int(1.0 / 3.3 * 4095)
