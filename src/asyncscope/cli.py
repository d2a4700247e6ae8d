"""
CLI entry point for asyncscope.

Usage:
    asyncscope collect -- <command...>          Run a program, keep its logs
    asyncscope visualize <dir> [-o out.html]     Build the HTML artifact
    asyncscope run -- <command...>              collect, then visualize
    asyncscope config [--write]                 Show or create configuration
"""

import argparse
import logging
import sys
from pathlib import Path

from asyncscope import __version__
from asyncscope.errors import AsyncScopeError, CollectError


def _command(args) -> list:
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    return command


def cmd_collect(args):
    """Run a program under instrumentation."""
    from .collector import collect

    command = _command(args)
    if not command:
        print("collect: no command given", file=sys.stderr)
        return 2

    try:
        result = collect(command, config=args.config)
    except CollectError as e:
        print(f"Collect failed: {e}", file=sys.stderr)
        if e.log_directory is not None:
            print(f"Log directory: {e.log_directory}", file=sys.stderr)
        return 1

    print(result.log_directory)
    return 0


def cmd_visualize(args):
    """Build the HTML artifact from a log directory."""
    from .analysis import get_engine
    from .pipeline import visualize

    try:
        engine = get_engine(args.engine)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        output = visualize(args.data_dir, args.output, engine=engine, config=args.config)
    except AsyncScopeError as e:
        print(f"Visualize failed: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0


def cmd_run(args):
    """collect, then visualize the result."""
    from .analysis import get_engine
    from .collector import collect
    from .pipeline import visualize

    command = _command(args)
    if not command:
        print("run: no command given", file=sys.stderr)
        return 2

    try:
        engine = get_engine(args.engine)
        result = collect(command, config=args.config)
        output = visualize(result.log_directory, args.output, engine=engine, config=args.config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except AsyncScopeError as e:
        print(f"Run failed: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0


def cmd_config(args):
    """Show or write configuration."""
    from .config import write_default_config

    if args.write:
        path = write_default_config(Path(args.write) if args.write != "-" else None)
        print(f"Wrote {path}")
        return 0

    for key, value in args.config.to_dict().items():
        print(f"{key}: {value!r}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asyncscope",
        description="asyncio task profiler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    asyncscope collect -- python app.py --port 8080
    asyncscope visualize 4242.asyncscope -o report.html
    asyncscope run -- python app.py
"""
    )
    parser.add_argument('--version', action='version', version=f'asyncscope {__version__}')
    parser.add_argument('--config', dest='config_path', help='Path to a YAML config file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='command_name', help='Commands')

    # collect
    collect_p = subparsers.add_parser('collect', help='Run a program and record its logs')
    collect_p.add_argument('command', nargs=argparse.REMAINDER, help='Program and arguments')
    collect_p.set_defaults(func=cmd_collect)

    # visualize
    visualize_p = subparsers.add_parser('visualize', help='Build the HTML artifact')
    visualize_p.add_argument('data_dir', help='Log directory written by collect')
    visualize_p.add_argument('-o', '--output', help='Output file (default: <data_dir>.html)')
    visualize_p.add_argument('--engine', default='async-graph', help='Analysis engine')
    visualize_p.set_defaults(func=cmd_visualize)

    # run
    run_p = subparsers.add_parser('run', help='collect then visualize')
    run_p.add_argument('-o', '--output', help='Output file (default: <log dir>.html)')
    run_p.add_argument('--engine', default='async-graph', help='Analysis engine')
    run_p.add_argument('command', nargs=argparse.REMAINDER, help='Program and arguments')
    run_p.set_defaults(func=cmd_run)

    # config
    config_p = subparsers.add_parser('config', help='Show or create configuration')
    config_p.add_argument('--write', nargs='?', const='-', help='Write a default config file')
    config_p.set_defaults(func=cmd_config)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command_name is None:
        parser.print_help()
        return 0

    from .config import get_config
    args.config = get_config(Path(args.config_path) if args.config_path else None)

    return args.func(args)
