"""CLI entry point for rulewatch: runs watch rules as a standalone build host."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from rulewatch_core.config import load_rules_config
from rulewatch_core.errors import RulewatchError

from rulewatch import __version__
from rulewatch.engine import RuleEngine, is_dev_server
from rulewatch.lifecycle import BuildLifecycle

# Starter rules file written by --init
DEFAULT_RULES_TEMPLATE = """\
# Auto-generated rules.toml for rulewatch

# Directory patterns and commands are resolved against (relative to this file)
cwd = "."
debug = false
ignore_cycles = false

[[rule]]
name = "Codegen"
files = ["schema/*.json"]
action = "echo regenerate from $CHANGED_FILE"
first_compilation = true
shared_action = true

[[rule]]
name = "Lint"
files = ["src/**/*.py"]
action = "ruff check $CHANGED_FILE"
"""


def create_default_rules(rules_path: Path) -> bool:
    """
    Create a starter rules.toml if it doesn't exist.

    Args:
        rules_path: Path where the rules file should be created

    Returns:
        True if the file was created, False if it already exists

    Raises:
        PermissionError: If unable to write to the directory
        OSError: If other file system errors occur
    """
    if rules_path.exists():
        return False

    rules_path.parent.mkdir(parents=True, exist_ok=True)
    rules_path.write_text(DEFAULT_RULES_TEMPLATE)
    return True


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="rulewatch",
        description="Run actions when files matching watch rules change.",
        epilog="Examples:\n"
        "  rulewatch                        # Run first-compilation rules once\n"
        "  rulewatch --serve                # Run them, then keep watching\n"
        "  rulewatch -c build/rules.toml    # Use a custom rules file\n"
        "  rulewatch --init                 # Write a starter rules.toml",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c",
        "--config",
        default="rules.toml",
        help="Path to rules file (default: rules.toml)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Keep watching after the first run (also enabled by RULEWATCH_SERVE=true)",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--ignore-cycles", action="store_true", help="Disable change-loop detection")
    parser.add_argument("--init", action="store_true", help="Create a starter rules file and exit")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


async def run_host(engine: RuleEngine, lifecycle: BuildLifecycle) -> None:
    """Fire the first run and, in dev-server mode, wait for a stop signal."""
    engine.apply(lifecycle)
    await lifecycle.run()

    if not engine.dev_server:
        return

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows: fall back to KeyboardInterrupt
            pass

    try:
        await stop.wait()
    finally:
        lifecycle.close()


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the rulewatch CLI.

    Handles:
    - Argument parsing and logging setup
    - Creation of a starter rules file (--init)
    - Running the first compilation, then watching in --serve mode
    - Error handling and exit codes
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    rules_path = Path(args.config).resolve()

    try:
        if args.init:
            if create_default_rules(rules_path):
                print(f"Created starter rules at: {rules_path}")
            else:
                print(f"Rules file already exists: {rules_path}")
            return

        options = load_rules_config(rules_path)
        engine = RuleEngine.from_options(
            options,
            debug=args.debug or options.debug,
            ignore_cycles=args.ignore_cycles or options.ignore_cycles,
            dev_server=args.serve or is_dev_server(),
        )
        asyncio.run(run_host(engine, BuildLifecycle()))

    except KeyboardInterrupt:
        sys.exit(130)
    except RulewatchError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
