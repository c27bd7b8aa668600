import io
import logging
import os
import tempfile
import unittest
from contextlib import redirect_stderr
from pathlib import Path
from unittest import mock

from watches.cli import EXIT_CONFIGURATION_ERROR, EXIT_MISMATCH, EXIT_OK, watches_main
from watches.report.store import read_report
from watches.settings import CONFIG_ENV

from .test_utils import make_tree


class CliTest(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch.dict(os.environ)
        patcher.start()
        self.addCleanup(patcher.stop)
        os.environ.pop(CONFIG_ENV, None)

        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.base = Path(self._tmpdir.name)
        self.log_file = self.base / 'watches.log'
        saved_handlers = logging.root.handlers[:]
        saved_level = logging.root.level
        self.addCleanup(self._restore_logging, saved_handlers, saved_level)

    @staticmethod
    def _restore_logging(handlers, level):
        for handler in logging.root.handlers[:]:
            if handler not in handlers:
                logging.root.removeHandler(handler)
                handler.close()
        for handler in handlers:
            if handler not in logging.root.handlers:
                logging.root.addHandler(handler)
        logging.root.setLevel(level)

    def run_main(self, *argv):
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = watches_main(['--concurrency', '2', '--log-file', str(self.log_file), *argv])
        return code, stderr.getvalue()

    def log_text(self):
        return self.log_file.read_text() if self.log_file.exists() else ''

    def test_identical_roots_exit_cleanly(self):
        a = make_tree(self.base / 'a', {'f.txt': b'same'})
        b = make_tree(self.base / 'b', {'f.txt': b'same'})

        code, _ = self.run_main('--search', str(a), '--search', str(b))

        self.assertEqual(EXIT_OK, code)
        self.assertNotIn('Mismatch', self.log_text())
        self.assertIn('Checked 1 paths across 2 roots', self.log_text())

    def test_mismatch_exits_cleanly_by_default(self):
        a = make_tree(self.base / 'a', {'sub/f.txt': b'one'})
        b = make_tree(self.base / 'b', {'sub/f.txt': b'two'})

        code, _ = self.run_main('-s', str(a), '-s', str(b))

        self.assertEqual(EXIT_OK, code)
        self.assertIn('Mismatch sub/f.txt', self.log_text())

    def test_fail_on_mismatch(self):
        a = make_tree(self.base / 'a', {'f.txt': b'one'})
        b = make_tree(self.base / 'b', {'f.txt': b'two'})

        code, _ = self.run_main('-s', str(a), '-s', str(b), '--fail-on-mismatch')

        self.assertEqual(EXIT_MISMATCH, code)

    def test_unreadable_file_is_a_warning_only(self):
        a = make_tree(self.base / 'a', {'f.txt': b'same'})
        b = make_tree(self.base / 'b', {'f.txt': b'same'})
        c = make_tree(self.base / 'c', {})

        code, _ = self.run_main('-s', str(a), '-s', str(b), '-s', str(c), '--fail-on-mismatch')

        self.assertEqual(EXIT_OK, code)
        self.assertIn(f"WARNING - Unable to fingerprint {c / 'f.txt'}", self.log_text())

    def test_missing_root_is_fatal(self):
        a = make_tree(self.base / 'a', {'f.txt': b'x'})

        code, stderr = self.run_main('-s', str(a), '-s', str(self.base / 'absent'))

        self.assertEqual(EXIT_CONFIGURATION_ERROR, code)
        self.assertIn('does not exist or is not a directory', stderr)

    def test_no_roots_is_fatal(self):
        code, stderr = self.run_main()

        self.assertEqual(EXIT_CONFIGURATION_ERROR, code)
        self.assertIn('no search paths specified', stderr)

    def test_invalid_numeric_option_is_fatal(self):
        a = make_tree(self.base / 'a', {})

        code, stderr = self.run_main('-s', str(a), '--chunk-size', '0')

        self.assertEqual(EXIT_CONFIGURATION_ERROR, code)
        self.assertIn('chunk size must be positive', stderr)

    def test_invalid_log_level_is_a_usage_error(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                watches_main(['--log-level', 'LOUD'])

        self.assertEqual(2, cm.exception.code)

    def test_config_file(self):
        a = make_tree(self.base / 'a', {'f.txt': b'one', 'skip.tmp': b'x'})
        b = make_tree(self.base / 'b', {'f.txt': b'two', 'skip.tmp': b'y'})
        config = self.base / 'watches.toml'
        config.write_text(
            f'roots = ["{a}", "{b}"]\n'
            '[compare]\n'
            'exclude = ["f.txt"]\n'
            'fail_on_mismatch = true\n')

        code, _ = self.run_main('--config', str(config))
        self.assertEqual(EXIT_MISMATCH, code)
        self.assertIn('Mismatch skip.tmp', self.log_text())
        self.assertNotIn('Mismatch f.txt', self.log_text())

        code, _ = self.run_main('--config', str(config), '--exclude', '*.tmp')
        self.assertEqual(EXIT_OK, code)

    def test_command_line_overrides_fail_on_mismatch_from_config(self):
        a = make_tree(self.base / 'a', {'f.txt': b'one'})
        b = make_tree(self.base / 'b', {'f.txt': b'two'})
        config = self.base / 'watches.toml'
        config.write_text('[compare]\nfail_on_mismatch = true\n')

        code, _ = self.run_main('--config', str(config), '-s', str(a), '-s', str(b), '--no-fail-on-mismatch')

        self.assertEqual(EXIT_OK, code)

    def test_mistyped_config_settings_are_fatal(self):
        a = make_tree(self.base / 'a', {'f.txt': b'one'})
        b = make_tree(self.base / 'b', {'f.txt': b'two'})
        for body, message in (
                ('[compare]\nfail_on_mismatch = "false"\n', 'compare.fail_on_mismatch must be true or false'),
                ('[compare]\nreport = 1\n', 'compare.report must be a string'),
                ('[logging]\nlevel = 10\n', 'logging.level must be a string')):
            with self.subTest(body=body):
                config = self.base / 'watches.toml'
                config.write_text(body)

                code, stderr = self.run_main('--config', str(config), '-s', str(a), '-s', str(b))

                self.assertEqual(EXIT_CONFIGURATION_ERROR, code)
                self.assertIn(message, stderr)

    def test_config_from_environment(self):
        a = make_tree(self.base / 'a', {'f.txt': b'same'})
        config = self.base / 'env.toml'
        config.write_text(f'roots = ["{a}"]\n')
        os.environ[CONFIG_ENV] = str(config)

        code, _ = self.run_main()

        self.assertEqual(EXIT_OK, code)

    def test_report_export(self):
        a = make_tree(self.base / 'a', {'same.txt': b's', 'diff.txt': b'one'})
        b = make_tree(self.base / 'b', {'same.txt': b's', 'diff.txt': b'two'})
        export = self.base / 'report.msgpack'

        code, _ = self.run_main('-s', str(a), '-s', str(b), '--report', str(export), '--path-concurrency', '2')

        self.assertEqual(EXIT_OK, code)
        reports = list(read_report(export))
        self.assertEqual([Path('diff.txt')], [report.relative_path for report in reports])
        self.assertEqual([[a], [b]], list(reports[0].groups.values()))

    def test_report_export_with_undecodable_name(self):
        name = os.fsdecode(b'caf\xe9.txt')
        a = make_tree(self.base / 'a', {name: b'one'})
        b = make_tree(self.base / 'b', {name: b'two'})
        export = self.base / 'report.msgpack'

        code, _ = self.run_main('-s', str(a), '-s', str(b), '--report', str(export))

        self.assertEqual(EXIT_OK, code)
        self.assertIn('Mismatch caf', self.log_text())
        reports = list(read_report(export))
        self.assertEqual([Path(name)], [report.relative_path for report in reports])
        self.assertTrue(reports[0].is_mismatch)

    def test_unwritable_report_is_fatal(self):
        a = make_tree(self.base / 'a', {})

        code, stderr = self.run_main('-s', str(a), '--report', str(self.base / 'missing' / 'report.msgpack'))

        self.assertEqual(EXIT_CONFIGURATION_ERROR, code)
        self.assertIn('cannot create report file', stderr)


if __name__ == '__main__':
    unittest.main()
