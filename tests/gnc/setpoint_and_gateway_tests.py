import math
import unittest

import numpy as np

from offboard_arbiter.gnc import (
    Arm,
    CommandGateway,
    CommandRejected,
    SetMode,
    Setpoint,
    SetpointPublisher,
    TransportFailure,
)
from offboard_arbiter.gnc.conversions import convert_NED_ENU_in_inertial, convert_NED_ENU_yaw
from offboard_arbiter.transport.mocks import ManualClock


class TestSetpoint(unittest.TestCase):
    def test_from_xyz(self):
        setpoint = Setpoint.from_xyz(1, 2, 3)
        self.assertEqual(setpoint.position, (1.0, 2.0, 3.0))
        self.assertIsNone(setpoint.yaw)
        np.testing.assert_array_equal(setpoint.as_array(), np.float32([1, 2, 3]))

    def test_rejects_non_finite(self):
        with self.assertRaises(ValueError):
            Setpoint.from_xyz(0, float('nan'), 2)


class TestSetpointPublisher(unittest.TestCase):
    def test_publishes_each_call(self):
        clock = ManualClock(10.0)
        sent = []
        publisher = SetpointPublisher(sent.append, clock)
        first = Setpoint.from_xyz(0, 0, 2)
        second = Setpoint.from_xyz(0, 0, 3)

        publisher.publish(first)
        clock.advance(0.05)
        publisher.publish(second)

        self.assertEqual(sent, [first, second])
        self.assertEqual(publisher.publish_count, 2)
        self.assertAlmostEqual(publisher.last_publish_time, 10.05)
        self.assertEqual(publisher.last_setpoint, second)

    def test_sink_errors_do_not_escape(self):
        def broken(_):
            raise OSError("network unreachable")

        publisher = SetpointPublisher(broken)
        publisher.publish(Setpoint.from_xyz(0, 0, 2))
        publisher.publish(Setpoint.from_xyz(0, 0, 2))
        self.assertEqual(publisher.failure_count, 2)
        self.assertEqual(publisher.publish_count, 2)

    def test_unexpected_sink_errors_do_not_escape(self):
        def closed_loop(_):
            raise RuntimeError("Event loop is closed")

        publisher = SetpointPublisher(closed_loop)
        publisher.publish(Setpoint.from_xyz(0, 0, 2))
        self.assertEqual(publisher.failure_count, 1)


class TestCommandGateway(unittest.TestCase):
    def setUp(self):
        self.calls = []
        self.error = None

    def set_mode(self, mode, timeout):
        self.calls.append(("mode", mode, timeout))
        if self.error:
            raise self.error

    def arm(self, value, timeout):
        self.calls.append(("arm", value, timeout))
        if self.error:
            raise self.error

    def test_accepted(self):
        gateway = CommandGateway(self.set_mode, self.arm)
        self.assertTrue(gateway.request_mode_change("OFFBOARD", 0.3))
        self.assertTrue(gateway.request_arm(True, 0.3))
        self.assertEqual(self.calls, [("mode", "OFFBOARD", 0.3), ("arm", True, 0.3)])

    def test_every_failure_is_false(self):
        gateway = CommandGateway(self.set_mode, self.arm)
        for error in (CommandRejected("denied"), TransportFailure("no ack"), TimeoutError(), OSError("closed")):
            with self.subTest(error=type(error).__name__):
                self.error = error
                self.assertFalse(gateway.request_mode_change("OFFBOARD", 0.3))
                self.assertFalse(gateway.request_arm(True, 0.3))

    def test_unexpected_link_errors_are_false(self):
        gateway = CommandGateway(self.set_mode, self.arm)
        for error in (RuntimeError("Event loop is closed"), ValueError("bad frame"), KeyError("OFFBOARD")):
            with self.subTest(error=type(error).__name__):
                self.error = error
                with self.assertLogs('offboard_arbiter.gnc.commands', level='WARNING'):
                    self.assertFalse(gateway.request_mode_change("OFFBOARD", 0.3))
                result = gateway.issue(Arm(True), 0.3)
                self.assertFalse(result.accepted)

    def test_issue_dispatches_requests(self):
        gateway = CommandGateway(self.set_mode, self.arm)
        result = gateway.issue(SetMode("AUTO.LOITER"), 0.2)
        self.assertEqual(result.request, SetMode("AUTO.LOITER"))
        self.assertTrue(result.accepted)

        self.error = CommandRejected("denied")
        result = gateway.issue(Arm(False), 0.2)
        self.assertFalse(result.accepted)
        self.assertEqual(self.calls[-1], ("arm", False, 0.2))


class TestConversions(unittest.TestCase):
    def test_position_swap(self):
        np.testing.assert_array_equal(convert_NED_ENU_in_inertial((1.0, 2.0, 3.0)), np.float32([2, 1, -3]))
        np.testing.assert_array_equal(
            convert_NED_ENU_in_inertial(convert_NED_ENU_in_inertial((1.0, 2.0, 3.0))), np.float32([1, 2, 3]))

    def test_yaw(self):
        # ENU east is NED 90 degrees, ENU north is NED 0
        self.assertAlmostEqual(convert_NED_ENU_yaw(0.0), math.pi / 2)
        self.assertAlmostEqual(convert_NED_ENU_yaw(math.pi / 2), 0.0)
        self.assertAlmostEqual(convert_NED_ENU_yaw(math.pi), -math.pi / 2)


if __name__ == '__main__':
    unittest.main()
