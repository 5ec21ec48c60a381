"""
Command Line Interface for gifclip
Main entry point with argument parsing and command execution
"""

import argparse
import json
import mimetypes
import os
import signal
import sys
import threading
import traceback
from typing import Any, Dict, List, Optional

import yaml
from tqdm import tqdm

from .config_manager import ConfigManager
from .conversion_pipeline import ConversionPipeline
from .logger_setup import setup_logging
from .retention_sweeper import RetentionScheduler, policies_from_config
from .tool_runner import tool_on_path
from .utils.formatting import format_file_size, parse_time

logger = None  # Will be initialized after logging setup

REQUIRED_TOOLS = ['ffmpeg', 'ffprobe']
OPTIONAL_TOOLS = ['yt-dlp', 'gifski']


class GifClipCLI:
    def __init__(self):
        self.config: Optional[ConfigManager] = None
        self.pipeline: Optional[ConversionPipeline] = None
        # Shutdown tracking
        self.shutdown_requested = False
        self.shutdown_lock = threading.Lock()
        self._signal_count = 0
        self._previous_handlers: Dict[int, Any] = {}

    def main(self, argv: Optional[List[str]] = None) -> int:
        """Main entry point; returns the process exit code"""
        global logger
        args = self._parse_arguments(argv)
        if not args.command:
            self.parser.print_help()
            return 1

        try:
            effective_level = 'DEBUG' if args.debug else args.log_level
            self.config = ConfigManager(args.config_dir)
            logging_config = os.path.join(self.config.config_dir, 'logging.yaml')
            logger = setup_logging(config_path=logging_config, log_level=effective_level, logs_dir=args.logs_dir)

            self._setup_signal_handlers()
            self._initialize_components(args)
            return self._execute_command(args)

        except KeyboardInterrupt:
            if logger:
                logger.info("Operation cancelled by user")
            return 1
        except Exception as e:
            if logger:
                logger.error(f"Unexpected error: {e}")
                logger.debug(traceback.format_exc())
            else:
                print(f"Error: {e}", file=sys.stderr)
            return 1
        finally:
            self._restore_signal_handlers()

    def _setup_signal_handlers(self):
        """Setup signal handlers for cooperative cancellation of running tools"""
        if threading.current_thread() is not threading.main_thread():
            return

        def signal_handler(signum, frame):
            self._signal_count += 1
            try:
                signal_name = signal.Signals(signum).name
            except ValueError:
                signal_name = str(signum)

            if self._signal_count >= 2:
                print(f"\n{signal_name} received {self._signal_count} times. Exiting...", file=sys.stderr)
                sys.exit(1)

            with self.shutdown_lock:
                if not self.shutdown_requested:
                    self.shutdown_requested = True
                    if logger:
                        logger.info(f"Received {signal_name} signal, cancelling running tools...")
                    print(f"\nReceived {signal_name}, cleaning up... (press Ctrl+C again to force quit)",
                          file=sys.stderr)
            if self.pipeline:
                self.pipeline.request_shutdown()

        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, signal_handler)

    def _restore_signal_handlers(self):
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _is_shutdown_requested(self) -> bool:
        return self.shutdown_requested

    def _parse_arguments(self, argv: Optional[List[str]] = None) -> argparse.Namespace:
        """Parse command line arguments"""
        parser = argparse.ArgumentParser(
            prog='gifclip',
            description="gifclip - Turn a short window of a video into an optimized GIF",
            epilog="Examples:\n"
                   "  %(prog)s c --url https://youtu.be/dQw4w9WgXcQ --start 1:05 --duration 4\n"
                   "  %(prog)s c --file clip.mp4 --start 0 --duration 3\n"
                   "  %(prog)s s\n"
                   "  %(prog)s tools\n\n"
                   "Short aliases: c (convert), s (sweep), tools (check-tools), cfg (config)\n",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )

        # Global options
        parser.add_argument('--config-dir', default=None,
                            help='Configuration directory (default: packaged defaults)')
        parser.add_argument('--storage-root', help='Root directory for cache, uploads, scratch and output')
        parser.add_argument('--logs-dir', default='logs', help='Directory for log files (default: logs)')
        parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                            default=None, help='Override console log level (default: WARNING)')
        parser.add_argument('-v', '--debug', action='store_true',
                            help='Enable verbose debug output in console and logs')

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        convert_parser = subparsers.add_parser('convert', aliases=['c'],
                                               help='Convert a window of a remote or local video to GIF')
        source_group = convert_parser.add_mutually_exclusive_group(required=True)
        source_group.add_argument('--url', '--id', dest='url', help='Video URL or bare video identifier')
        source_group.add_argument('--file', help='Local video file to upload')
        convert_parser.add_argument('--start', default='0', help='Start time in seconds or MM:SS (default: 0)')
        convert_parser.add_argument('-d', '--duration', required=True, help='Clip length in seconds (1-30)')
        convert_parser.add_argument('--mime', help='Declared MIME type for --file (default: guessed from name)')
        convert_parser.add_argument('--no-gifski', action='store_true',
                                    help='Skip the gifski tier and use the palette encoder only')
        convert_parser.add_argument('--no-progress', action='store_true', help='Disable the progress bar')

        subparsers.add_parser('sweep', aliases=['s'], help='Delete stale uploads, cache, scratch and output files')
        subparsers.add_parser('check-tools', aliases=['tools'], help='Report which external tools are on PATH')

        config_parser = subparsers.add_parser('config', aliases=['cfg'], help='Configuration management')
        config_subparsers = config_parser.add_subparsers(dest='config_action')
        config_subparsers.add_parser('show', help='Show current configuration')
        config_subparsers.add_parser('validate', help='Validate configuration files')

        self.parser = parser
        return parser.parse_args(argv)

    def _initialize_components(self, args: argparse.Namespace):
        """Apply CLI overrides and build the pipeline"""
        self.config.update_from_args(self._extract_config_overrides(args))
        if args.command in ('convert', 'c'):
            self.pipeline = ConversionPipeline(self.config, shutdown_checker=self._is_shutdown_requested)

    def _extract_config_overrides(self, args: argparse.Namespace) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {}
        if args.storage_root:
            overrides['pipeline.storage_root'] = args.storage_root
        if getattr(args, 'no_gifski', False):
            overrides['gif_settings.gifski.enabled'] = False
        return overrides

    def _execute_command(self, args: argparse.Namespace) -> int:
        command = args.command
        if command in ('convert', 'c'):
            return self._convert(args)
        if command in ('sweep', 's'):
            return self._sweep()
        if command in ('check-tools', 'tools'):
            return self._check_tools()
        if command in ('config', 'cfg'):
            return self._handle_config_command(args)
        logger.error(f"Unknown command: {command}")
        return 1

    @staticmethod
    def _parse_start(value: str) -> Any:
        """Seconds ('65', '65.5') or MM:SS ('1:05'); anything else is passed through for validation"""
        text = (value or '').strip()
        if ':' in text:
            seconds = parse_time(text)
            return seconds if seconds is not None else text
        try:
            return float(text)
        except ValueError:
            return text

    @staticmethod
    def _parse_duration(value: str) -> Any:
        try:
            return float(value)
        except (TypeError, ValueError):
            return value

    def _convert(self, args: argparse.Namespace) -> int:
        start_time = self._parse_start(args.start)
        duration = self._parse_duration(args.duration)

        show_progress = not args.no_progress and isinstance(duration, float) and duration > 0
        progress_bar = tqdm(total=duration, desc="Encoding", unit="s",
                            bar_format="{l_bar}{bar}| {n:.1f}/{total:.1f}s") if show_progress else None

        def on_progress(seconds: float):
            if progress_bar is not None:
                progress_bar.n = round(seconds, 1)
                progress_bar.refresh()

        try:
            if args.file:
                mime = args.mime or mimetypes.guess_type(args.file)[0] or 'application/octet-stream'
                with open(args.file, 'rb') as handle:
                    response = self.pipeline.handle({
                        'sourceKind': 'upload',
                        'fileBytes': handle,
                        'fileName': os.path.basename(args.file),
                        'declaredMimeType': mime,
                        'startTime': start_time,
                        'duration': duration,
                    }, progress_callback=on_progress)
            else:
                response = self.pipeline.handle({
                    'sourceKind': 'remote',
                    'identifier': args.url,
                    'startTime': start_time,
                    'duration': duration,
                }, progress_callback=on_progress)
        finally:
            if progress_bar is not None:
                progress_bar.close()

        print(json.dumps(response, indent=2))
        if response.get('success'):
            logger.info(f"GIF written: {response['outputUrl']} ({format_file_size(response['fileSizeBytes'])})")
            return 0
        return 1

    def _sweep(self) -> int:
        scheduler = RetentionScheduler(policies_from_config(self.config),
                                       float(self.config.get('pipeline.retention.interval_seconds', 600)))
        reports = scheduler.run_once()
        for report in reports:
            print(f"{report.directory}: scanned {report.scanned}, removed {len(report.deleted)}"
                  + (f", {len(report.errors)} error(s)" if report.errors else ''))
        return 1 if any(report.errors for report in reports) else 0

    def _check_tools(self) -> int:
        missing_required = False
        for program in REQUIRED_TOOLS + OPTIONAL_TOOLS:
            location = tool_on_path(program)
            if location:
                print(f"  OK       {program:<8} {location}")
            else:
                label = 'MISSING' if program in REQUIRED_TOOLS else 'absent'
                print(f"  {label:<8} {program}")
                missing_required = missing_required or program in REQUIRED_TOOLS
        if not tool_on_path('gifski'):
            print("gifski not found: conversions will use the ffmpeg palette encoder only")
        return 1 if missing_required else 0

    def _handle_config_command(self, args: argparse.Namespace) -> int:
        """Handle configuration commands"""
        if args.config_action == 'show':
            print("Current Configuration:")
            print("=" * 50)
            print(yaml.dump(self.config.config, default_flow_style=False, indent=2))
            return 0
        if args.config_action == 'validate':
            if self.config.validate_config():
                print("OK Configuration is valid")
                return 0
            print("Configuration validation failed", file=sys.stderr)
            return 1
        logger.error("Config command requires an action (show|validate)")
        return 1


def main():
    """Entry point for the CLI application"""
    cli = GifClipCLI()
    sys.exit(cli.main())


if __name__ == '__main__':
    main()
