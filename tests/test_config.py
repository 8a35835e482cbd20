import tempfile
import unittest
from pathlib import Path

from streamcapture.config import build_config, create_example_config, load_config
from streamcapture.main import config_from_args, parse_args


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = build_config({'channel': 'someone'})
        self.assertEqual(config.interval, 1)
        self.assertIsNone(config.proxy_url)
        self.assertEqual(config.channel_dir, Path('.') / 'someone')
        self.assertEqual(config.capture.max_concurrent_fetches, 16)
        self.assertEqual(config.capture.variant_selection, 'last')
        self.assertEqual(config.capture.poll_retry_delay, 3.0)
        self.assertEqual(config.capture.max_poll_failures, 10)
        self.assertEqual(config.capture.warmup_delay, 4.0)
        self.assertEqual(config.capture.max_missing_retries, 5)

    def test_channel_required(self) -> None:
        with self.assertRaises(ValueError):
            build_config({'interval': 5})

    def test_lenient_values(self) -> None:
        config = build_config({
            'channel': 'someone',
            'interval': '3',
            'capture': {
                'max_concurrent_fetches': '0',
                'variant_selection': 'fastest',
                'request_timeout': '12,5',
                'dedup_window': 2,
            },
        })
        self.assertEqual(config.interval, 3)
        self.assertEqual(config.capture.max_concurrent_fetches, 1)
        self.assertEqual(config.capture.variant_selection, 'last')
        self.assertEqual(config.capture.request_timeout, 12.5)
        self.assertEqual(config.capture.dedup_window, 64)

    def test_load_yaml_with_overrides(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'config.yaml'
            path.write_text(
                "channel: fromfile\n"
                "proxy_url: http://127.0.0.1:8080\n"
                "capture:\n"
                "  variant_selection: bandwidth\n"
                "logging:\n"
                "  level: DEBUG\n",
                encoding='utf-8',
            )
            config = load_config(str(path), {'channel': 'override', 'interval': None})

        self.assertEqual(config.channel, 'override')
        self.assertEqual(config.interval, 1)
        self.assertEqual(config.proxy_url, 'http://127.0.0.1:8080')
        self.assertEqual(config.capture.variant_selection, 'bandwidth')
        self.assertEqual(config.logging.level, 'DEBUG')

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_config('/nonexistent/config.yaml')

    def test_example_config_loads(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'example.yaml'
            create_example_config(str(path))
            config = load_config(str(path))
        self.assertEqual(config.channel, 'someone')


class CommandLineTests(unittest.TestCase):
    def test_flags_without_config_file(self) -> None:
        args = parse_args([
            '-c', '/nonexistent/config.yaml',
            '-u', 'someone',
            '-i', '5',
            '-p', 'http://proxy:3128',
            '--log-level', 'DEBUG',
        ])
        config = config_from_args(args)
        self.assertEqual(config.channel, 'someone')
        self.assertEqual(config.interval, 5)
        self.assertEqual(config.proxy_url, 'http://proxy:3128')
        self.assertEqual(config.logging.level, 'DEBUG')

    def test_no_channel_and_no_file(self) -> None:
        args = parse_args(['-c', '/nonexistent/config.yaml'])
        with self.assertRaises(FileNotFoundError):
            config_from_args(args)


if __name__ == "__main__":
    unittest.main()
