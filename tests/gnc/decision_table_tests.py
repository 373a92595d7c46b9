import unittest

from offboard_arbiter.gnc import Arm, OffboardConfig, SetMode, VehicleStatus, decide_command


class TestDecideCommand(unittest.TestCase):
    def test_table(self):
        cases = [
            # mode, armed, cooldown elapsed, expected
            ("MANUAL", False, True, SetMode("OFFBOARD")),
            ("MANUAL", True, True, SetMode("OFFBOARD")),
            ("OFFBOARD", False, True, Arm(True)),
            ("OFFBOARD", True, True, None),
            ("MANUAL", False, False, None),
            ("OFFBOARD", False, False, None),
            ("OFFBOARD", True, False, None),
        ]
        for mode, armed, elapsed, expected in cases:
            with self.subTest(mode=mode, armed=armed, elapsed=elapsed):
                status = VehicleStatus(connected=True, armed=armed, mode=mode)
                self.assertEqual(decide_command(status, "OFFBOARD", elapsed), expected)

    def test_unknown_mode_counts_as_wrong_mode(self):
        self.assertEqual(decide_command(VehicleStatus(), "OFFBOARD", True), SetMode("OFFBOARD"))

    def test_other_target_mode(self):
        status = VehicleStatus(connected=True, armed=False, mode="AUTO.LOITER")
        self.assertEqual(decide_command(status, "AUTO.LOITER", True), Arm(True))


class TestOffboardConfig(unittest.TestCase):
    def test_defaults_are_valid(self):
        config = OffboardConfig().validate()
        self.assertAlmostEqual(config.period, 0.05)
        self.assertEqual(config.prime_count, 100)
        self.assertEqual(config.request_cooldown, 5.0)

    def test_rate_must_beat_failsafe(self):
        with self.assertRaises(ValueError):
            OffboardConfig(rate_hz=1.5).validate()

    def test_command_timeout_must_fit_in_failsafe(self):
        with self.assertRaises(ValueError):
            OffboardConfig(command_timeout=0.46).validate()
        OffboardConfig(command_timeout=0.4).validate()

    def test_bad_values(self):
        for kwargs in ({"prime_count": -1}, {"request_cooldown": -1.0}, {"command_timeout": 0.0}, {"target_mode": ""}):
            with self.subTest(**kwargs):
                with self.assertRaises(ValueError):
                    OffboardConfig(**kwargs).validate()


if __name__ == '__main__':
    unittest.main()
