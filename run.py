#!/usr/bin/env python3
"""
rootpilot
Entry point: resolve and run one natural-language instruction on a device.

Usage:
    python run.py "go back"                       # Dispatch through the skills
    python run.py --dry-run "search pizza"        # Resolve only, print the script
    python run.py --shell "adb shell" "go home"   # Drive a device from a host
    python run.py --cache-stats                   # Show cache statistics
"""
import sys
import argparse
from rootpilot.core.logger import init_logger, get_logger
from rootpilot.core.config import Config
from rootpilot.core.errors import error_to_dict
from rootpilot.core.executor import ExecutionCallback


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="rootpilot - natural-language automation for rooted Android devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py "open whatsapp"               # Launch an app
  python run.py "type hello and send"         # On-screen automation
  python run.py --dry-run "go back"           # Show the resolved script only
  python run.py --shell "adb shell" "go home" # Use adb instead of su
  python run.py --evict-stale                 # Drop old, rarely used cache entries
        """
    )

    parser.add_argument(
        "instruction",
        nargs="*",
        help="Instruction to run (quote it or pass several words)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve the instruction and print the script without executing it"
    )

    parser.add_argument(
        "--cache-stats",
        action="store_true",
        help="Print command cache statistics and exit"
    )

    parser.add_argument(
        "--evict-stale",
        action="store_true",
        help="Remove stale cache entries and exit"
    )

    parser.add_argument(
        "--shell",
        type=str,
        default=None,
        help=f"Device shell command (default: {Config.SHELL_COMMAND})"
    )

    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help=f"Ollama model name (default: {Config.OLLAMA_MODEL})"
    )

    parser.add_argument(
        "--ollama-url",
        type=str,
        default=None,
        help=f"Ollama API base URL (default: {Config.OLLAMA_BASE_URL})"
    )

    parser.add_argument(
        "--llm-timeout",
        type=int,
        default=None,
        help=f"LLM request timeout in seconds (default: {Config.LLM_TIMEOUT})"
    )

    parser.add_argument(
        "--no-contacts",
        action="store_true",
        help="Skip loading the device contact directory"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=Config.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {Config.LOG_LEVEL})"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Hide pipeline-internal log lines"
    )

    return parser.parse_args(argv)


class ConsoleCallback(ExecutionCallback):
    """Prints execution progress through the logger"""

    def __init__(self, logger):
        self.logger = logger
        self.failed = False

    def on_progress(self, message: str) -> None:
        self.logger.info(message)

    def on_success(self, output: str) -> None:
        if output.strip():
            self.logger.info(output.strip())
        self.logger.info("Done")

    def on_error(self, error: Exception) -> None:
        self.failed = True
        self.logger.error(f"Failed: {error_to_dict(error)['error']}")


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    init_logger(args.log_level, quiet_mode=args.quiet or Config.QUIET_MODE)
    logger = get_logger()

    if args.shell:
        Config.SHELL_COMMAND = args.shell

    from rootpilot.core.assistant import Assistant

    try:
        assistant = Assistant(
            ollama_model=args.model,
            ollama_url=args.ollama_url,
            llm_timeout=args.llm_timeout,
        )
    except Exception as e:
        logger.error(f"Failed to start: {e}")
        return 1

    if args.cache_stats:
        stats = assistant.cache_stats()
        print(f"Cached commands: {stats['count']}")
        print(f"Total uses: {stats['total_uses']}")
        return 0

    if args.evict_stale:
        removed = assistant.evict_stale()
        print(f"Removed {removed} stale entries")
        return 0

    instruction = " ".join(args.instruction).strip()
    if not instruction:
        logger.error("No instruction given (see --help)")
        return 2

    try:
        if args.dry_run:
            resolution = assistant.resolve(instruction)
            print(f"# source={resolution.source} rule={resolution.rule} "
                  f"elapsed={resolution.elapsed_ms:.1f}ms")
            print(resolution.script.serialize())
            return 0

        if not args.no_contacts:
            assistant.load_contacts()

        callback = ConsoleCallback(logger)
        assistant.handle(instruction, callback)
        return 1 if callback.failed else 0
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {error_to_dict(e)['error']}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
