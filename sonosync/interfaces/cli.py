import argparse
import logging
import signal
import sys
import threading
import time
from typing import List, Optional

from dotenv import load_dotenv

from sonosync.application.pipeline import TransferOrchestrator
from sonosync.crosscutting.config import (
    LOG_LEVELS, ConfigError, Settings, get_config_summary, resolve_credentials_from_env,
)
from sonosync.crosscutting.logging import log_error, log_with_fields, setup_logging
from sonosync.crosscutting.reporting import (
    ReportHeader, create_report, create_report_header, save_report,
)
from sonosync.domain.entities import Platform, TransferReport
from sonosync.domain.errors import PartialTransfer, SonoSyncError, TransferCancelled
from sonosync.infrastructure.providers.registry import build_provider
from sonosync.interfaces.service import TransferRequest, build_orchestrator, transfer


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2
EXIT_CANCELLED = 130

PLATFORM_CHOICES = [p.value for p in Platform] + ['google']

logger = logging.getLogger(__name__)


class CLI:
    """Command Line Interface for SonoSync."""

    def __init__(self):
        self.parser = self._create_parser()
        self.cancel_event = threading.Event()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog='sonosync',
            description='Transfer a playlist between streaming catalogs'
        )
        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        transfer_parser = subparsers.add_parser('transfer', help='Transfer one playlist')
        transfer_parser.add_argument('--source', choices=PLATFORM_CHOICES, required=True,
                                     help='Source platform')
        transfer_parser.add_argument('--target', choices=PLATFORM_CHOICES, required=True,
                                     help='Destination platform')
        transfer_parser.add_argument('--playlist', required=True,
                                     help='Source playlist ID')
        transfer_parser.add_argument('--name', required=True,
                                     help='Display name; the new playlist is called "<name> (Transfer)"')
        transfer_parser.add_argument('--dry-run', action='store_true',
                                     help='Match tracks without creating anything')
        transfer_parser.add_argument('--report-path', default=None,
                                     help='Directory for the JSON report (default: SONOSYNC_REPORT_DIR or reports/)')
        transfer_parser.add_argument('--log-level', choices=list(LOG_LEVELS), default=None,
                                     help='Set logging level')

        list_parser = subparsers.add_parser('list', help='List playlists on a platform')
        list_parser.add_argument('--provider', choices=PLATFORM_CHOICES, required=True,
                                 help='Platform to list playlists from')
        list_parser.add_argument('--log-level', choices=list(LOG_LEVELS), default=None,
                                 help='Set logging level')

        return parser

    def _setup_signal_handlers(self) -> None:
        """Turn SIGINT/SIGTERM into a cancellation request."""
        def signal_handler(signum, frame):
            if self.cancel_event.is_set():
                # Second signal: stop waiting for the current window
                raise KeyboardInterrupt
            logger.warning(f"Received signal {signum}, cancelling after the current window...")
            self.cancel_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")

    def _validate_arguments(self, args: argparse.Namespace) -> None:
        if args.command == 'transfer':
            if not args.playlist.strip():
                raise ValueError("--playlist must not be empty")
            if not args.name.strip():
                raise ValueError("--name must not be empty")

    def _transfer_playlist(self, args: argparse.Namespace, settings: Settings) -> int:
        credentials = resolve_credentials_from_env(tokens_file=settings.tokens_file)
        log_with_fields(logger, 'DEBUG', 'Configuration loaded', get_config_summary(settings, credentials))

        request = TransferRequest(
            source=args.source,
            destination=args.target,
            playlist_id=args.playlist,
            name=args.name,
            credentials=credentials,
            dry_run=args.dry_run,
        )
        orchestrator = build_orchestrator(settings)
        header = create_report_header(orchestrator.transfer_id, args.source, args.target,
                                      args.playlist, dry_run=args.dry_run)
        report_dir = args.report_path or settings.report_dir

        try:
            report = transfer(request, settings=settings, cancel_event=self.cancel_event,
                              orchestrator=orchestrator)
        except PartialTransfer as e:
            log_error(logger, 'Transfer finished partially', e)
            self._write_report(header, orchestrator, e.report, report_dir, error=str(e))
            print(str(e))
            return EXIT_PARTIAL
        except TransferCancelled as e:
            logger.warning(str(e))
            self._write_report(header, orchestrator, None, report_dir, error=str(e))
            return EXIT_CANCELLED
        except SonoSyncError as e:
            log_error(logger, 'Transfer failed', e)
            self._write_report(header, orchestrator, None, report_dir, error=str(e))
            print(str(e))
            return EXIT_FAILED

        self._write_report(header, orchestrator, report, report_dir)
        verb = 'would be added' if report.dry_run else 'added'
        print(f"{report.match_count}/{report.total} tracks matched, {report.added_count} {verb}")
        if report.new_playlist_id:
            print(f"New playlist: {report.new_playlist_id}")
        return EXIT_OK

    def _write_report(self, header: ReportHeader, orchestrator: TransferOrchestrator,
                      outcome: Optional[TransferReport], report_dir: str,
                      error: Optional[str] = None) -> None:
        metrics = orchestrator.metrics.to_dict() if orchestrator.metrics else {}
        report = create_report(header, outcome, orchestrator.results, metrics=metrics, error=error)
        try:
            report_file = save_report(report, report_dir)
        except OSError as e:
            log_error(logger, 'Failed to save report', e, report_dir=report_dir)
            return
        logger.info(f"Report saved to: {report_file}")

    def _list_playlists(self, args: argparse.Namespace, settings: Settings) -> int:
        credentials = resolve_credentials_from_env(tokens_file=settings.tokens_file)
        try:
            provider = build_provider(args.provider, credentials, settings)
            playlists = provider.list_playlists()
        except SonoSyncError as e:
            log_error(logger, 'Failed to list playlists', e)
            print(str(e))
            return EXIT_FAILED

        print(f"Available playlists from {provider.platform.display_name}:")
        print("-" * 50)
        for playlist in playlists:
            print(f"{playlist.id}: {playlist.name} [{playlist.owner}] (tracks: {playlist.track_count})")
        return EXIT_OK

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        args = self.parser.parse_args(argv)

        if not args.command:
            self.parser.print_help()
            return EXIT_FAILED

        try:
            settings = Settings.from_env()
            setup_logging(args.log_level or settings.log_level)
            self._validate_arguments(args)
            self._setup_signal_handlers()

            if args.command == 'transfer':
                return self._transfer_playlist(args, settings)
            return self._list_playlists(args, settings)
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return EXIT_CANCELLED
        except (ConfigError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_FAILED
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    load_dotenv()
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
