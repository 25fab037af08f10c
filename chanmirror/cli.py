"""chanmirror CLI entrypoint."""

from __future__ import annotations

import logging
import signal
import sys
from dataclasses import dataclass, field

from .config import MirrorConfig, load_config
from .constants import MODES
from .daemon import build_daemon
from .errors import MirrorError
from .eventlog import MirrorEventLog

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# flag -> config field for options that take a value
VALUE_FLAGS = {
    "--target": "target_id",
    "--source": "source_channel",
    "--target-channel": "target_channel",
    "--marker": "marker",
    "--log": "log_path",
    "--sessions-dir": "sessions_dir",
    "--state-dir": "state_dir",
    "--command": "command",
    "--cache-size": "cache_size",
    "--run-cache-size": "run_cache_size",
    "--poll-seconds": "poll_seconds",
    "--timeout": "send_timeout_seconds",
    "--max-chars": "max_chars",
}
BOOL_FLAGS = {
    "--shell": "shell",
    "--from-start": "from_start",
}

logger = logging.getLogger(__name__)


@dataclass
class CommandLine:
    """Parsed command line."""

    mode: str
    options: dict[str, object] = field(default_factory=dict)
    verbose: bool = False


class MirrorApplication:
    """Application coordinator for config, logging and the daemon loop."""

    def run(self, argv: list[str]) -> int:
        """Run the CLI from argv.

        Args:
            argv: CLI args excluding program name.

        Returns:
            Exit status code.
        """
        if not argv or argv[0] in {"-h", "--help"}:
            self._print_help()
            return 0 if argv else 2

        try:
            command_line = parse_command_line(argv)
            configure_logging(command_line.verbose)
            config = load_config(command_line.mode, command_line.options)
            return self._run_daemon(config)
        except MirrorError as exc:
            print(str(exc), file=sys.stderr)
            return 1

    def _run_daemon(self, config: MirrorConfig) -> int:
        """Build the daemon, install signal handlers and block until stopped.

        Args:
            config: Resolved configuration.

        Returns:
            Exit status code.
        """
        event_log = None
        if config.state_dir is not None:
            event_log = MirrorEventLog(config.state_dir, mode=config.mode)

        try:
            daemon = build_daemon(config, event_log=event_log)
            if not daemon.forwarder.transport.executable_available():
                logger.warning("send command not found on PATH: %s", config.command_template)

            def handle_signal(signum: int, _frame: object) -> None:
                logger.info("received %s; shutting down", signal.Signals(signum).name)
                daemon.stop()

            signal.signal(signal.SIGINT, handle_signal)
            signal.signal(signal.SIGTERM, handle_signal)
            daemon.run()
        finally:
            if event_log is not None:
                event_log.close()
        return 0

    @staticmethod
    def _print_help() -> None:
        """Print command usage."""
        print("usage:")
        print("  chanmirror logs --target ID [--log PATH] [options]")
        print("  chanmirror transcripts --target ID [--sessions-dir DIR] [options]")
        print("options:")
        print("  --source CHANNEL        channel whose replies are mirrored (webchat)")
        print("  --target-channel NAME   channel label of the target (telegram)")
        print("  --marker TAG            tag prepended to mirrored text ([mirrored])")
        print("  --command TEMPLATE      send command with {target} and {message}")
        print("  --shell                 run the send command through the shell")
        print("  --timeout SECONDS       send command timeout (30)")
        print("  --max-chars N           outgoing message size limit (4000)")
        print("  --cache-size N          remembered mirrored texts (50)")
        print("  --run-cache-size N      remembered run ids (200)")
        print("  --poll-seconds S        file poll interval (0.5)")
        print("  --state-dir DIR         write events.jsonl and metrics.json")
        print("  --from-start            read followed files from the top")
        print("  --verbose               debug logging")
        print("every option also reads CHANMIRROR_<NAME> from the environment")


def parse_command_line(argv: list[str]) -> CommandLine:
    """Parse `<mode> [options]` arguments.

    Args:
        argv: CLI args excluding program name.

    Returns:
        Parsed mode and options keyed by config field name.
    """
    if not argv:
        raise MirrorError("validation error: missing mode")
    mode = argv[0]
    if mode not in MODES:
        raise MirrorError(f"validation error: mode must be one of {', '.join(MODES)}")

    command_line = CommandLine(mode=mode)
    index = 1
    while index < len(argv):
        token = argv[index]
        flag, sep, inline_value = token.partition("=")

        if token == "--verbose":
            command_line.verbose = True
            index += 1
            continue

        if token in BOOL_FLAGS:
            command_line.options[BOOL_FLAGS[token]] = True
            index += 1
            continue

        if flag in VALUE_FLAGS:
            if sep:
                value = inline_value
                index += 1
            else:
                if index + 1 >= len(argv):
                    raise MirrorError(f"validation error: {flag} requires a value")
                value = argv[index + 1]
                index += 2
            command_line.options[VALUE_FLAGS[flag]] = value
            continue

        raise MirrorError(f"validation error: unknown argument: {token}")

    return command_line


def configure_logging(verbose: bool) -> None:
    """Configure root logging for the daemon process."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint.

    Args:
        argv: Optional argv vector.

    Returns:
        Exit status code.
    """
    application = MirrorApplication()
    return application.run(argv if argv is not None else sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main())
