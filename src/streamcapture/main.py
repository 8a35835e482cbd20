"""
Stream Capture - entry point.

Watches one channel and records every broadcast:
1. Check the channel page until it goes live
2. Resolve the best HLS variant
3. Poll the media playlist, fetch new segments concurrently
4. Append segments to {channel}/{timestamp}.ts in broadcast order
5. Go back to waiting when the playlist stays unavailable
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .config import Config, build_config, load_config
from .errors import CaptureFatalError
from .logger import get_logger, setup_logging
from .monitor import AvailabilityMonitor
from .site_client import SiteClient
from .timer import Timer


class StreamCaptureApp:
    """Owns the HTTP client, the shared timer and the monitor loop."""

    def __init__(self, config: Config):
        self.config = config
        self._logger = get_logger('app')

        self.timer = Timer()
        self.client = SiteClient(
            config.channel,
            proxy_url=config.proxy_url,
            timeout=config.capture.request_timeout
        )
        self.monitor = AvailabilityMonitor(config, self.client, self.timer)

    def shutdown(self) -> None:
        """Interrupt every wait; the current session closes its file and returns."""
        if not self.timer.stopped:
            self._logger.info("Shutdown signal received...")
            self.timer.stop()

    async def start(self) -> None:
        """Run until a shutdown signal arrives."""
        self._logger.info(
            f"Starting Stream Capture for '{self.config.channel}', "
            f"saving to {self.config.channel_dir}"
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.shutdown)

        await self.client.connect()
        try:
            await self.monitor.run()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await self.client.disconnect()
            self._logger.info("Stopped")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='stream-capture',
        description='Watch a channel and save every broadcast as a local .ts file'
    )
    parser.add_argument('-c', '--config', default='config.yaml', help='YAML configuration file')
    parser.add_argument('-u', '--username', dest='channel', help='channel username to watch')
    parser.add_argument('-i', '--interval', type=int, help='minutes between online checks')
    parser.add_argument('-p', '--proxyurl', dest='proxy_url', help='proxy URL for all requests')
    parser.add_argument('-o', '--output-dir', dest='output_dir', help='directory recordings are saved under')
    parser.add_argument('--log-level', dest='log_level', help='DEBUG, INFO, WARNING or ERROR')
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> Config:
    """
    Merge command line flags over the YAML file.

    The file may be missing when the channel is given with -u.
    """
    overrides = {
        'channel': args.channel,
        'interval': args.interval,
        'proxy_url': args.proxy_url,
        'output_dir': args.output_dir,
    }

    if Path(args.config).exists() or not args.channel:
        config = load_config(args.config, overrides)
    else:
        config = build_config({k: v for k, v in overrides.items() if v is not None})

    if args.log_level:
        config.logging.level = args.log_level
    return config


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    try:
        config = config_from_args(args)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        print(f"Configuration error: {e}")
        return 1

    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count
    )

    app = StreamCaptureApp(config)
    try:
        await app.start()
    except CaptureFatalError as e:
        get_logger('app').critical(f"Fatal error: {e}")
        return 1
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    run()
