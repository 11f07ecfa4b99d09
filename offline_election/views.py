"""Read-only reports over chain state or a snapshot."""

from .errors import DataFetchError
from .snapshot import fetch_slashing_eras, is_dangling


def current_validators(source, at):
    """Validators of the current session (``Session.Validators``)."""
    validators = source.query("Session", "Validators", at=at) or []
    if not isinstance(validators, (list, tuple)):
        raise DataFetchError(f"malformed Session.Validators: {validators!r}")
    return [str(v) for v in validators]


def dangling_nominators(source, at):
    """Nominations voided because the target was slashed after submission.

    Returns:
        dict of nominator -> list of dangling targets, sorted by nominator.
    """
    dangling = {}
    try:
        slashed = fetch_slashing_eras(source, at)
        for account, nomination in source.query_map("Staking", "Nominators", at=at):
            submitted_in = nomination.get("submitted_in", 0)
            targets = [
                t
                for t in nomination["targets"]
                if is_dangling(submitted_in, t, slashed)
            ]
            if targets:
                dangling[account] = targets
    except (KeyError, TypeError, AttributeError) as e:
        raise DataFetchError(f"malformed staking storage: {e!r}") from e
    return dict(sorted(dangling.items()))


def approval_stakes(snapshot):
    """Self stake plus the full stake of every voter backing each candidate."""
    approvals = {c.candidate_id: c.self_stake for c in snapshot.candidates}
    for voter in snapshot.voters:
        for target in voter.targets:
            approvals[target] += voter.stake
    return approvals


def nominator_check(snapshot, who, network):
    voter = next((v for v in snapshot.voters if v.voter_id == who), None)
    if voter is None:
        return [f"  {who} is not an effective voter at block {snapshot.block}"]
    approvals = approval_stakes(snapshot)
    lines = [
        f"  {who}",
        f"  Stake:    {network.format_balance(voter.stake)}",
        f"  Targets:  {len(voter.targets)}",
    ]
    for target in voter.targets:
        status = "ACTIVE" if target in snapshot.active else "WAITING"
        lines.append(
            f"    {status:<8}{network.format_balance(approvals[target]):>26}  {target}"
        )
    return lines


def validator_check(snapshot, who, network):
    candidate = next((c for c in snapshot.candidates if c.candidate_id == who), None)
    if candidate is None:
        return [f"  {who} is not a candidate at block {snapshot.block}"]
    approvals = approval_stakes(snapshot)
    ranking = sorted(approvals, key=lambda c: (-approvals[c], c))
    backers = [v for v in snapshot.voters if who in v.targets]
    status = "ACTIVE" if who in snapshot.active else "WAITING"
    return [
        f"  {who}",
        f"  Status:          {status}",
        f"  Self-stake:      {network.format_balance(candidate.self_stake):>26}",
        f"  Approval stake:  {network.format_balance(approvals[who]):>26}",
        f"  Voters:          {len(backers):>26}",
        f"  Approval rank:   {ranking.index(who) + 1:>21} / {len(ranking)}",
    ]
