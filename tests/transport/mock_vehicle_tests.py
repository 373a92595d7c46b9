import unittest

from offboard_arbiter.gnc import CommandRejected, Setpoint, TransportFailure, VehicleStateCache, VehicleStatus
from offboard_arbiter.transport.mocks import ManualClock, MockVehicleLink, SimulatedShutdown

HOVER = Setpoint.from_xyz(0, 0, 2)


class TestMockVehicleLink(unittest.TestCase):
    def setUp(self):
        self.clock = ManualClock()
        self.cache = VehicleStateCache(clock=self.clock)
        self.vehicle = MockVehicleLink(clock=self.clock)
        self.vehicle.start(self.cache)

    def test_start_reports_connected(self):
        self.assertEqual(self.cache.current(), VehicleStatus(True, False, "POSCTL"))

    def test_offboard_needs_setpoint_stream(self):
        with self.assertRaises(CommandRejected):
            self.vehicle.set_mode("OFFBOARD", 0.3)

        self.vehicle.send_setpoint(HOVER)
        self.vehicle.set_mode("OFFBOARD", 0.3)
        self.assertEqual(self.cache.current().mode, "OFFBOARD")

    def test_stale_stream_falls_back(self):
        self.vehicle.send_setpoint(HOVER)
        self.vehicle.set_mode("OFFBOARD", 0.3)
        self.clock.advance(0.6)

        self.vehicle.check_failsafe()
        self.assertEqual(self.cache.current().mode, "AUTO.LOITER")

    def test_arming_rules(self):
        self.vehicle.override_mode("AUTO.LAND")
        with self.assertRaises(CommandRejected):
            self.vehicle.arm(True, 0.3)

        self.vehicle.override_mode("POSCTL")
        self.vehicle.arm(True, 0.3)
        self.assertTrue(self.cache.current().armed)

        self.vehicle.override_disarm()
        self.assertFalse(self.cache.current().armed)

    def test_disconnected_vehicle_fails_transport(self):
        self.vehicle.drop_connection()
        self.assertFalse(self.cache.current().connected)
        with self.assertRaises(TransportFailure):
            self.vehicle.send_setpoint(HOVER)
        with self.assertRaises(TransportFailure):
            self.vehicle.arm(True, 0.3)

        self.vehicle.restore_connection()
        self.vehicle.send_setpoint(HOVER)

    def test_command_delay_moves_manual_clock(self):
        vehicle = MockVehicleLink(clock=self.clock, command_delay=0.2)
        vehicle.start(self.cache)
        vehicle.arm(True, 0.3)
        self.assertAlmostEqual(self.clock(), 0.2)


class TestSimulatedShutdown(unittest.TestCase):
    def test_wait_advances_clock(self):
        clock = ManualClock()
        shutdown = SimulatedShutdown(clock, stop_at=1.0)
        self.assertFalse(shutdown.wait(0.4))
        self.assertTrue(shutdown.wait(0.6))
        self.assertAlmostEqual(clock(), 1.0)
        self.assertEqual(shutdown.waits, [0.4, 0.6])


if __name__ == '__main__':
    unittest.main()
