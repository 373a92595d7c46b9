import logging
import tempfile
import unittest
from pathlib import Path

from offboard_arbiter.logging_utils import setup_logging


class TestSetupLogging(unittest.TestCase):
    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    def test_writes_log_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_path = setup_logging(Path(tmp) / 'logs')
            logging.getLogger('offboard_arbiter.test').info("phase PRIME -> ENGAGE")
            for handler in logging.getLogger().handlers:
                handler.flush()

            self.assertTrue(log_path.name.startswith('offboard_node_'))
            self.assertIn("phase PRIME -> ENGAGE", log_path.read_text())

    def test_console_only(self):
        self.assertIsNone(setup_logging())

    def test_logs_dir_must_be_a_directory(self):
        with tempfile.NamedTemporaryFile() as f:
            with self.assertRaises(FileExistsError):
                setup_logging(f.name)


if __name__ == '__main__':
    unittest.main()
