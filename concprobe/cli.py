#!/usr/bin/env python3
"""concprobe - Concurrency Limit Probe CLI.

Main command-line interface for finding the maximum client concurrency a
cluster sustains without a node crashing.
"""

import argparse
import logging
import shutil
import sys
from pathlib import Path

from concprobe.cluster import SSHCluster
from concprobe.config import ConfigError, ProbeConfig, load_config
from concprobe.core import DeadlineExceededError, ProbeOrchestrator, SetupError
from concprobe.persistence import StateManager


# Constants
DEFAULT_CONFIG_PATH = "probe.yaml"
EXAMPLE_CONFIG_NAME = "probe.yaml.example"

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def _load(args: argparse.Namespace) -> ProbeConfig:
    config = load_config(args.config)
    if getattr(args, "no_sampling", False):
        config.database.disable_txn_stats_sampling = True
    return config


def cmd_run(args: argparse.Namespace) -> int:
    """Run the full concurrency search.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    config = _load(args)
    state = StateManager(db_path=config.db_path)

    try:
        orchestrator = ProbeOrchestrator(config, state=state)
        result = orchestrator.run(args.min, args.max)
    except SetupError as exc:
        logger.error(f"✗ {exc}")
        return 1
    except DeadlineExceededError as exc:
        logger.error(f"✗ Run aborted: {exc}")
        return 1
    finally:
        state.close()

    print(f"\n✓ Max supported concurrency: {result.max_concurrency}")
    return 0


def cmd_probe(args: argparse.Namespace) -> int:
    """Probe a single concurrency level.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 if the level survived, 2 if it crashed, 1 on error)
    """
    config = _load(args)
    orchestrator = ProbeOrchestrator(config)

    try:
        outcome = orchestrator.probe_level(args.concurrency, with_setup=args.setup)
    except (SetupError, DeadlineExceededError) as exc:
        logger.error(f"✗ {exc}")
        return 1

    if outcome.is_crashed:
        print(f"✗ Concurrency {args.concurrency} crashed: {outcome.error}")
        return 2

    print(f"✓ Concurrency {args.concurrency} survived ({outcome.duration:.0f}s)")
    return 0


def _open_state(args: argparse.Namespace) -> StateManager:
    db_path = args.db
    if not db_path:
        try:
            db_path = load_config(args.config).db_path
        except ConfigError:
            db_path = "probe.db"
    return StateManager(db_path=db_path)


def cmd_status(args: argparse.Namespace) -> int:
    """Show status of the latest run.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    state = _open_state(args)
    run = state.get_latest_run()

    if not run:
        print("No probing run found")
        state.close()
        return 0

    print("=== Probe Status ===\n")
    print(f"Run ID:       {run.run_id}")
    print(f"Status:       {run.status}")
    print(f"Interval:     [{run.min_concurrency}, {run.max_concurrency})")
    print(f"Started:      {run.start_time}")

    if run.end_time:
        print(f"Ended:        {run.end_time}")
    if run.error_message:
        print(f"Error:        {run.error_message}")
    if run.result_concurrency is not None:
        print(f"\nMax supported concurrency: {run.result_concurrency}")

    probes = state.get_probes(run.run_id)
    print(f"\nTotal probes: {len(probes)}")

    if probes:
        print("\nRecent probes:")
        for probe in probes[-5:]:
            result = probe.result or "running"
            duration = f"{probe.duration:.0f}s" if probe.duration else "N/A"
            print(
                f"  {probe.probe_num:3d}. concurrency {probe.concurrency:5d} | "
                f"{result:8s} | {duration}"
            )

    state.close()
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    """Generate a run report.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    state = _open_state(args)

    try:
        run_id = args.run_id
        if run_id is None:
            run = state.get_latest_run()
            if not run:
                print("No probing run found")
                return 1
            run_id = run.run_id

        report = state.export_report(run_id, format=args.format)
        if not report:
            print(f"Run {run_id} not found")
            return 1

        if args.output:
            Path(args.output).write_text(report)
            print(f"Report saved to {args.output}")
        else:
            print(report)
        return 0
    finally:
        state.close()


def cmd_check(args: argparse.Namespace) -> int:
    """Check that every configured node is reachable over SSH.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 if all nodes are reachable, 1 otherwise)
    """
    config = _load(args)
    cluster = SSHCluster(config)

    unreachable = cluster.unreachable_nodes()
    for hostname in cluster.managers:
        mark = "✗" if any(node.hostname == hostname for node in unreachable) else "✓"
        print(f"  {mark} {hostname}")

    if unreachable:
        logger.error(f"✗ {len(unreachable)} node(s) unreachable")
        return 1

    logger.info("✓ All nodes reachable")
    return 0


def cmd_init_config(args: argparse.Namespace) -> int:
    """Generate example configuration file.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    source_file = Path(__file__).parent / "config" / EXAMPLE_CONFIG_NAME

    if not source_file.exists():
        print(f"Error: Example config file not found at {source_file}")
        return 1

    output_file = Path(args.output) if args.output else Path(DEFAULT_CONFIG_PATH)

    if output_file.exists() and not args.force:
        print(f"File '{output_file}' already exists. Use --force to overwrite.")
        return 1

    shutil.copy(source_file, output_file)
    print(f"✓ Example configuration created: {output_file}")
    print("\nNext steps:")
    print(f"  1. Edit {output_file} with your cluster layout")
    print("  2. Run: concprobe check")
    print("  3. Run: concprobe run")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        description="Find the maximum workload concurrency a cluster sustains",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG_PATH, help="Configuration file path"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run command
    parser_run = subparsers.add_parser("run", help="Run the concurrency search")
    parser_run.add_argument("--min", type=int, help="Known-good lower bound (overrides config)")
    parser_run.add_argument("--max", type=int, help="Assumed-bad upper bound (overrides config)")
    parser_run.add_argument(
        "--no-sampling",
        action="store_true",
        help="Disable transaction statistics sampling during setup",
    )

    # probe command
    parser_probe = subparsers.add_parser("probe", help="Probe a single concurrency level")
    parser_probe.add_argument("concurrency", type=int, help="Concurrency level to probe")
    parser_probe.add_argument(
        "--setup", action="store_true", help="Run cluster setup and data load first"
    )
    parser_probe.add_argument(
        "--no-sampling",
        action="store_true",
        help="Disable transaction statistics sampling during setup",
    )

    # status command
    parser_status = subparsers.add_parser("status", help="Show status of the latest run")
    parser_status.add_argument("--db", help="Run ledger path (default: from config)")

    # report command
    parser_report = subparsers.add_parser("report", help="Generate run report")
    parser_report.add_argument("--run-id", type=int, help="Run ID (default: latest)")
    parser_report.add_argument(
        "--format", choices=["text", "json"], default="text", help="Report format"
    )
    parser_report.add_argument("--output", "-o", help="Output file (default: stdout)")
    parser_report.add_argument("--db", help="Run ledger path (default: from config)")

    # check command
    subparsers.add_parser("check", help="Check SSH reachability of all nodes")

    # init-config command
    parser_init_config = subparsers.add_parser(
        "init-config", help="Generate example configuration file"
    )
    parser_init_config.add_argument(
        "--output", "-o", help=f"Output file path (default: {DEFAULT_CONFIG_PATH})"
    )
    parser_init_config.add_argument(
        "--force", "-f", action="store_true", help="Overwrite existing file"
    )

    return parser


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        if args.command == "run":
            return cmd_run(args)
        if args.command == "probe":
            return cmd_probe(args)
        if args.command == "status":
            return cmd_status(args)
        if args.command == "report":
            return cmd_report(args)
        if args.command == "check":
            return cmd_check(args)
        if args.command == "init-config":
            return cmd_init_config(args)

        parser.print_help()
        return 1

    except ConfigError as exc:
        logger.error(str(exc))
        return 1
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except Exception as exc:
        logger.error(f"Fatal error: {exc}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
