"""Offline elections app.

Provides utilities and debug tools around the election pallets of a
substrate chain offline: predict the next elections, diagnose previous
ones, and check individual validators and nominators.

Usage:
    offline-election staking
    offline-election --network kusama -v staking --count 50 --iterations 10 --reduce
    offline-election --at 0x8b7d...17e council --output council.json
    offline-election staking --input snapshot.json --output result.json

The nominator stake split will differ from the chain's, which runs a random
number of balancing rounds; the winner set matches when run while the
election window is open.
"""

import argparse
import logging
import sys
import time
import traceback

from . import __version__
from .chain import ChainSource
from .errors import InternalInvariantViolation, OfflineElectionError, WriteError
from .export import dumps, summary, write_result
from .networks import detect_network, get_network
from .pipeline import default_count, elect
from .snapshot import (
    build_council_snapshot,
    build_staking_snapshot,
    dump_snapshot,
    load_snapshot,
)
from .views import (
    current_validators,
    dangling_nominators,
    nominator_check,
    validator_check,
)

log = logging.getLogger(__name__)

DEFAULT_URI = "ws://localhost:9944"
DEFAULT_NETWORK = "polkadot"


def setup_logging(verbosity):
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.captureWarnings(True)


def connect(url, ss58_format, timeout):
    return ChainSource(url, ss58_format=ss58_format, timeout=timeout)


def resolve_source(args):
    """Connect to the node and settle the network.

    Without ``--network`` the runtime spec name at the target block decides.

    Returns:
        (source, network, block hash)
    """
    if args.network:
        network = get_network(args.network)
        source = connect(args.uri or network.rpc, network.ss58_format, args.timeout)
    else:
        network = None
        source = connect(args.uri or DEFAULT_URI, None, args.timeout)
    try:
        at = args.at or source.head()
        if network is None:
            network = detect_network(source.spec_name(at))
    except OfflineElectionError:
        source.close()
        raise
    print(f"  Connected to {source.url} ({network.name})")
    return source, network, at


def acquire_snapshot(args, election):
    """Load ``--input`` or scrape the snapshot for ``election`` from the node."""
    if getattr(args, "input", None):
        network = get_network(args.network or DEFAULT_NETWORK)
        print(f"[1/3] Loading snapshot from {args.input}...")
        return load_snapshot(args.input), network

    print(f"[1/3] Fetching {election} snapshot...")
    source, network, at = resolve_source(args)
    with source:
        if election == "council":
            snapshot = build_council_snapshot(
                source, network.council_pallet, at=at, max_voters=args.max
            )
        else:
            snapshot = build_staking_snapshot(
                source,
                at=at,
                max_voters=args.max,
                max_targets=network.max_nominations,
            )
    print(f"    {len(snapshot.candidates)} candidates, {len(snapshot.voters)} voters")
    return snapshot, network


# ── Subcommands ────────────────────────────────────────────────────────

def cmd_election(args, election):
    snapshot, network = acquire_snapshot(args, election)
    if args.dump_snapshot:
        dump_snapshot(snapshot, args.dump_snapshot)

    count = args.count or default_count(snapshot, network)
    print(f"\n[2/3] Running sequential phragmen for {count} seats "
          f"({args.iterations} balancing rounds"
          f"{', reduce' if args.reduce else ''})...")
    result, convert = elect(snapshot, count, args.iterations, args.reduce)

    print("\n[3/3] Exporting results...")
    if args.verbose:
        print(summary(result, snapshot, network, convert, args.verbose))
    if not args.output:
        print(dumps(result))
        return 0
    try:
        write_result(result, args.output)
    except WriteError:
        if args.verbose:
            print(dumps(result))
        raise
    return 0


def cmd_current(args):
    source, _, at = resolve_source(args)
    with source:
        validators = current_validators(source, at)
    print(f"\n  Current validators ({len(validators)}):")
    for i, v in enumerate(validators, 1):
        print(f"  {i:4d}. {v}")
    return 0


def cmd_dangling(args):
    source, _, at = resolve_source(args)
    with source:
        dangling = dangling_nominators(source, at)
    print(f"\n  Dangling nominators ({len(dangling)}):")
    for nominator, targets in dangling.items():
        print(f"  {nominator}")
        for target in targets:
            print(f"      -> {target}")
    return 0


def cmd_check(args, check):
    snapshot, network = acquire_snapshot(args, "staking")
    print("\n".join(check(snapshot, args.who, network)))
    return 0


# ── Main ───────────────────────────────────────────────────────────────

def non_negative_int(value):
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"{value} is negative")
    return number


def _add_election_args(parser, help_count):
    parser.add_argument(
        "-c", "--count", type=non_negative_int, default=0, help=help_count
    )
    parser.add_argument(
        "-m",
        "--max",
        type=non_negative_int,
        default=None,
        help="Max number of voters to fetch. For development and testing only",
    )
    parser.add_argument(
        "--input",
        type=str,
        default="",
        help="Run on a JSON snapshot file instead of fetching from a node",
    )
    parser.add_argument(
        "--output", type=str, default="", help="JSON file to dump the result into"
    )
    parser.add_argument(
        "--dump-snapshot",
        type=str,
        default="",
        help="Also write the election snapshot to this JSON file",
    )
    parser.add_argument(
        "-i",
        "--iterations",
        type=non_negative_int,
        default=0,
        help="Number of balancing rounds (default: 0)",
    )
    parser.add_argument(
        "-r",
        "--reduce",
        action="store_true",
        default=False,
        help="Apply reduce to the output",
    )


def build_parser():
    parser = argparse.ArgumentParser(
        prog="offline-election",
        description="Run the election algorithms of a substrate chain offline",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "-n",
        "--network",
        type=str,
        default="",
        help="Network address format: polkadot|kusama|substrate|darwinia. "
        "Also sets the token. Detected from the runtime if omitted",
    )
    parser.add_argument(
        "--uri",
        type=str,
        default="",
        help=f"Node to connect to (default: network RPC, or {DEFAULT_URI})",
    )
    parser.add_argument(
        "--at",
        type=str,
        default=None,
        help="Block hash at which the scrape should happen (default: head)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall timeout in seconds for fetching chain data",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Print more output (-vv for per-voter distributions)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    staking = subparsers.add_parser("staking", help="Run the staking election")
    _add_election_args(staking, "Count of validators to elect "
                                "(default: Staking.ValidatorCount)")
    council = subparsers.add_parser("council", help="Run the council election")
    _add_election_args(council, "Count of members to elect "
                                "(default: desired members + runners-up)")

    subparsers.add_parser("current", help="Display the current validators")
    subparsers.add_parser(
        "dangling-nominators",
        help="Show nominations voided by a slash of their target",
    )
    for name, what in (("nominator-check", "nominator"),
                       ("validator-check", "validator")):
        check = subparsers.add_parser(name, help=f"General checkup of a {what}")
        check.add_argument("--who", type=str, required=True,
                           help=f"The {what}'s address")
        check.add_argument("--input", type=str, default="",
                           help="Use a JSON snapshot file instead of a node")
        check.add_argument("-m", "--max", type=non_negative_int, default=None,
                           help=argparse.SUPPRESS)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    log.info("program args: %s", args)

    start_time = time.time()
    print("=== Offline NPoS Election ===\n")
    try:
        if args.command in ("staking", "council"):
            code = cmd_election(args, args.command)
        elif args.command == "current":
            code = cmd_current(args)
        elif args.command == "dangling-nominators":
            code = cmd_dangling(args)
        elif args.command == "nominator-check":
            code = cmd_check(args, nominator_check)
        else:
            code = cmd_check(args, validator_check)
    except InternalInvariantViolation as e:
        traceback.print_exc()
        print(f"Internal error (this is a bug): {e}", file=sys.stderr)
        return 1
    except OfflineElectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    elapsed = time.time() - start_time
    print(f"\n  Total time: {elapsed:.0f}s")
    return code


if __name__ == "__main__":
    sys.exit(main())
