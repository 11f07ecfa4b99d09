"""Serialization and human-readable display of election results."""

import json
import os
import tempfile

from .errors import WriteError


def serialize(result):
    """Deterministic JSON-ready form of an ElectionResult.

    Winners are sorted by candidate id and contributions by voter id, so two
    runs over the same snapshot produce byte-identical files.
    """
    return {
        "winners": sorted(result.winners),
        "supports": {
            candidate: [
                {"voter": voter, "weight": weight}
                for voter, weight in sorted(result.supports[candidate].voters)
            ]
            for candidate in sorted(result.winners)
        },
    }


def dumps(result):
    return json.dumps(serialize(result), indent=2)


def write_result(result, path):
    """Write the serialized result to ``path``.

    The document is written to a temporary file next to ``path`` and moved
    into place, so a failed write never leaves a partial file behind.
    """
    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        with os.fdopen(fd, "w") as f:
            f.write(dumps(result))
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise WriteError(f"cannot write result to {path}: {e}") from e
    print(f"\nJSON written to {path}")


# ── Results Display ────────────────────────────────────────────────────

def summary(result, snapshot, network, convert, verbosity=1):
    """Printable report of a result; never alters it.

    Args:
        result: ElectionResult to display.
        snapshot: the Snapshot it was computed from (for the active set).
        network: Network giving the token name and decimals.
        convert: CurrencyToVote used to normalize the snapshot.
        verbosity: 2 or more also lists every winner's voters.
    """
    lines = []
    num_seats = len(result.winners)

    def stake(weight):
        return network.format_balance(convert.to_currency(weight))

    lines.append(f"\n{'=' * 105}")
    lines.append(f"  PREDICTED NPoS ELECTION RESULTS ({num_seats} seats)")
    block = snapshot.block if snapshot.block_number is None else (
        f"{snapshot.block_number} ({snapshot.block})"
    )
    lines.append(f"  block {block}, balancing rounds: {result.iterations}, "
                 f"reduced: {'yes' if result.reduced else 'no'}")
    lines.append(f"{'=' * 105}")

    elected_sorted = sorted(
        result.winners, key=lambda c: (-result.supports[c].total, c)
    )
    lines.append(
        f"\n {'Rank':<6}{'Status':<8}{'Backed Stake':>26}{'Voters':>8}  {'Address'}"
    )
    lines.append(f" {'-' * 6}{'-' * 8}{'-' * 26}{'-' * 8}  {'-' * 48}")

    newly_elected = []
    for rank, candidate in enumerate(elected_sorted, 1):
        support = result.supports[candidate]
        was_active = candidate in snapshot.active
        status = "ACTIVE" if was_active else "NEW"
        if snapshot.active and not was_active:
            newly_elected.append((rank, candidate, support.total))
        lines.append(
            f" {rank:<6}{status:<8}{stake(support.total):>26}"
            f"{len(support.voters):>8}  {candidate}"
        )
        if verbosity >= 2:
            for voter, weight in support.voters:
                lines.append(f"{'':>14}{stake(weight):>26}{'':>8}    <- {voter}")

    if newly_elected:
        lines.append("\n--- Candidates predicted to ENTER the active set ---")
        for rank, candidate, total in newly_elected:
            lines.append(f"  Rank {rank}: {stake(total):>26}  {candidate}")

    winners = set(result.winners)
    dropped = sorted(snapshot.active - winners)
    if dropped:
        lines.append("\n--- Active candidates predicted to DROP from the set ---")
        for candidate in dropped:
            lines.append(f"  {candidate}")

    totals = [result.supports[c].total for c in result.winners]
    lines.append("\n--- Summary ---")
    lines.append(f"  Total seats:       {num_seats}")
    lines.append(f"  Min backed stake:  {stake(min(totals)):>26}")
    lines.append(f"  Max backed stake:  {stake(max(totals)):>26}")
    lines.append(f"  Avg backed stake:  {stake(sum(totals) // len(totals)):>26}")
    lines.append(f"  Edges:             {result.edge_count():>26}")
    if newly_elected:
        lines.append(f"  Newly elected:     {len(newly_elected):>26}")
    if dropped:
        lines.append(f"  Dropped:           {len(dropped):>26}")
    return "\n".join(lines)
