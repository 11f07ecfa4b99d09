"""Election snapshot: the voter/candidate graph captured at one block.

A snapshot is either scraped from a node through a source implementing the
contract of :class:`offline_election.chain.ChainSource`, or loaded from a
JSON file previously written by :func:`dump_snapshot`.
"""

import json
import logging
import os

from .errors import DataFetchError, WriteError

log = logging.getLogger(__name__)


class Candidate:
    def __init__(self, candidate_id, self_stake=0):
        self.candidate_id = candidate_id
        self.self_stake = self_stake


class Voter:
    def __init__(self, voter_id, stake, targets):
        self.voter_id = voter_id
        self.stake = stake
        self.targets = list(targets)


class Snapshot:
    """Immutable election input.

    ``active`` holds the candidates elected in the currently active era, when
    known; it only feeds the human-readable summary.
    """

    def __init__(self, candidates, voters, block, block_number=None,
                 issuance=None, desired=None, active=()):
        self.candidates = tuple(candidates)
        self.voters = tuple(voters)
        self.block = block
        self.block_number = block_number
        self.desired = desired
        self.active = frozenset(active)
        if issuance is None:
            issuance = sum(v.stake for v in self.voters) + sum(
                c.self_stake for c in self.candidates
            )
        self.issuance = issuance
        self.validate()

    def validate(self, max_targets=None):
        """Check the graph invariants, raising DataFetchError on violation."""
        candidate_ids = set()
        for c in self.candidates:
            if c.candidate_id in candidate_ids:
                raise DataFetchError(f"duplicate candidate {c.candidate_id}")
            if not isinstance(c.self_stake, int) or c.self_stake < 0:
                raise DataFetchError(
                    f"invalid self stake for {c.candidate_id}: {c.self_stake!r}"
                )
            candidate_ids.add(c.candidate_id)

        voter_ids = set()
        for v in self.voters:
            if v.voter_id in voter_ids:
                raise DataFetchError(f"duplicate voter {v.voter_id}")
            voter_ids.add(v.voter_id)
            if not isinstance(v.stake, int) or v.stake < 0:
                raise DataFetchError(f"invalid stake for {v.voter_id}: {v.stake!r}")
            if len(set(v.targets)) != len(v.targets):
                raise DataFetchError(f"voter {v.voter_id} repeats a target")
            if max_targets is not None and len(v.targets) > max_targets:
                raise DataFetchError(
                    f"voter {v.voter_id} has {len(v.targets)} targets, "
                    f"more than the maximum of {max_targets}"
                )
            for target in v.targets:
                if target not in candidate_ids:
                    raise DataFetchError(
                        f"voter {v.voter_id} targets unknown candidate {target}"
                    )

        for c in self.candidates:
            if c.self_stake > 0 and c.candidate_id in voter_ids:
                raise DataFetchError(
                    f"{c.candidate_id} is both a self-backed candidate and a voter"
                )

    def candidate_ids(self):
        return [c.candidate_id for c in self.candidates]

    def to_json(self):
        return {
            "block": self.block,
            "block_number": self.block_number,
            "issuance": self.issuance,
            "desired": self.desired,
            "active": sorted(self.active),
            "candidates": [
                {"id": c.candidate_id, "self_stake": c.self_stake}
                for c in sorted(self.candidates, key=lambda c: c.candidate_id)
            ],
            "voters": [
                {"id": v.voter_id, "stake": v.stake, "targets": v.targets}
                for v in sorted(self.voters, key=lambda v: v.voter_id)
            ],
        }

    @classmethod
    def from_json(cls, data):
        try:
            candidates = []
            for entry in data["candidates"]:
                if isinstance(entry, str):
                    candidates.append(Candidate(entry))
                else:
                    candidates.append(
                        Candidate(entry["id"], entry.get("self_stake", 0))
                    )
            voters = [
                Voter(entry["id"], entry["stake"], entry["targets"])
                for entry in data["voters"]
            ]
            return cls(
                candidates,
                voters,
                block=data.get("block"),
                block_number=data.get("block_number"),
                issuance=data.get("issuance"),
                desired=data.get("desired"),
                active=data.get("active") or (),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise DataFetchError(f"malformed snapshot: {e!r}") from e


def load_snapshot(path):
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise DataFetchError(f"cannot read snapshot {path}: {e}") from e
    snapshot = Snapshot.from_json(data)
    log.info(
        "loaded snapshot at block %s: %d candidates, %d voters",
        snapshot.block, len(snapshot.candidates), len(snapshot.voters),
    )
    return snapshot


def dump_snapshot(snapshot, path):
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, "w") as f:
            json.dump(snapshot.to_json(), f, indent=2)
    except OSError as e:
        raise WriteError(f"cannot write snapshot to {path}: {e}") from e
    print(f"\nSnapshot written to {path}")


# ── Snapshot Builder ───────────────────────────────────────────────────

def _pin_block(source, at):
    at = at or source.head()
    block_number = source.block_number(at)
    return at, block_number


def _truncate_voters(voters, max_voters):
    if max_voters is None or len(voters) <= max_voters:
        return voters
    log.warning(
        "truncating voters from %d to %d; results are NOT a real prediction",
        len(voters), max_voters,
    )
    return sorted(voters, key=lambda v: v.voter_id)[:max_voters]


def _require(value, what):
    if value is None:
        raise DataFetchError(f"missing storage entry {what}")
    return value


def fetch_slashing_eras(source, at):
    """Map of stash -> era of the last non-zero slash, from Staking.SlashingSpans."""
    slashed = {}
    spans_map = source.query_map("Staking", "SlashingSpans", at=at, optional=True)
    for stash, spans in spans_map:
        if spans and spans.get("last_nonzero_slash"):
            slashed[stash] = spans["last_nonzero_slash"]
    return slashed


def fetch_active_set(source, at):
    """Candidates exposed in the active era, from Staking.ErasStakersOverview."""
    active_era = source.query("Staking", "ActiveEra", at=at, optional=True)
    if not active_era:
        return set()
    era_idx = active_era["index"]
    return {
        account
        for account, _ in source.query_map(
            "Staking", "ErasStakersOverview", [era_idx], at=at, optional=True
        )
    }


def is_dangling(submitted_in, target, slashed):
    """A nomination is void if its target was slashed after it was submitted."""
    return target in slashed and submitted_in < slashed[target]


def build_staking_snapshot(source, at=None, max_voters=None, max_targets=None):
    """Scrape the staking election input at block ``at`` (default: head).

    Returns:
        Snapshot with validators as candidates, their active ledger stake as
        self stake, and every nominator with a non-zero active stake as voter.
    """
    try:
        at, block_number = _pin_block(source, at)
        print(f"  Block: {block_number} ({at})")

        print("  Fetching validator candidates...")
        validators = [
            stash for stash, _ in source.query_map("Staking", "Validators", at=at)
        ]
        if not validators:
            raise DataFetchError("missing storage entry Staking.Validators")
        print(f"    {len(validators)} candidates")

        print("  Fetching all staking ledgers...")
        stake_active = {}
        for _, ledger in source.query_map("Staking", "Ledger", at=at):
            stake_active[ledger["stash"]] = ledger["active"]
        print(f"    {len(stake_active)} ledgers")

        print("  Fetching all nominators...")
        nominations = {}
        for account, nomination in source.query_map("Staking", "Nominators", at=at):
            nominations[account] = nomination
        print(f"    {len(nominations)} nominators")

        slashed = fetch_slashing_eras(source, at)
        active_set = fetch_active_set(source, at)
        desired = source.query("Staking", "ValidatorCount", at=at)
        issuance = _require(
            source.query("Balances", "TotalIssuance", at=at), "Balances.TotalIssuance"
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise DataFetchError(f"malformed staking storage: {e!r}") from e

    candidate_set = set(validators)
    candidates = [
        Candidate(stash, stake_active.get(stash, 0)) for stash in sorted(candidate_set)
    ]

    voters = []
    dropped_edges = 0
    for account in sorted(nominations):
        if account in candidate_set:
            # a validator's own vote is its self stake
            continue
        nomination = nominations[account]
        stake = stake_active.get(account, 0)
        targets = []
        for target in nomination["targets"]:
            if target not in candidate_set or target in targets:
                dropped_edges += 1
            elif is_dangling(nomination.get("submitted_in", 0), target, slashed):
                dropped_edges += 1
            else:
                targets.append(target)
        if max_targets is not None and len(targets) > max_targets:
            dropped_edges += len(targets) - max_targets
            targets = targets[:max_targets]
        if stake > 0 and targets:
            voters.append(Voter(account, stake, targets))
    if dropped_edges:
        log.info("dropped %d nominations to non-candidates or slashed targets",
                 dropped_edges)

    voters = _truncate_voters(voters, max_voters)
    return Snapshot(
        candidates,
        voters,
        block=at,
        block_number=block_number,
        issuance=issuance,
        desired=desired,
        active=active_set & candidate_set,
    )


def _seat_holder(entry):
    """Account of a council seat/candidate entry across runtime versions."""
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        return entry["who"]
    return entry[0]


def build_council_snapshot(source, pallet, at=None, max_voters=None):
    """Scrape the council (elections-phragmen) input at block ``at``.

    Candidates are the union of registered candidates, current members and
    runners-up; there is no self backing.
    """
    try:
        at, block_number = _pin_block(source, at)
        print(f"  Block: {block_number} ({at})")

        print("  Fetching council candidates...")
        candidates = _require(
            source.query(pallet, "Candidates", at=at), f"{pallet}.Candidates"
        )
        members = source.query(pallet, "Members", at=at) or []
        runners_up = source.query(pallet, "RunnersUp", at=at) or []
        candidate_set = {_seat_holder(e) for e in candidates}
        incumbents = {_seat_holder(e) for e in members}
        candidate_set |= incumbents
        candidate_set |= {_seat_holder(e) for e in runners_up}
        if not candidate_set:
            raise DataFetchError(f"missing storage entry {pallet}.Candidates")
        print(f"    {len(candidate_set)} candidates")

        print("  Fetching all council voters...")
        voters = []
        for account, voting in source.query_map(pallet, "Voting", at=at):
            if isinstance(voting, dict):
                stake, votes = voting["stake"], voting["votes"]
            else:
                stake, votes = voting
            targets = []
            for target in votes:
                if target in candidate_set and target not in targets:
                    targets.append(target)
            if stake > 0 and targets:
                voters.append(Voter(account, stake, targets))
        print(f"    {len(voters)} voters")

        desired = (source.constant(pallet, "DesiredMembers", at=at) or 0) + (
            source.constant(pallet, "DesiredRunnersUp", at=at) or 0
        )
        issuance = _require(
            source.query("Balances", "TotalIssuance", at=at), "Balances.TotalIssuance"
        )
    except (KeyError, TypeError, IndexError) as e:
        raise DataFetchError(f"malformed council storage: {e!r}") from e

    voters = _truncate_voters(
        sorted(voters, key=lambda v: v.voter_id), max_voters
    )
    return Snapshot(
        [Candidate(c) for c in sorted(candidate_set)],
        voters,
        block=at,
        block_number=block_number,
        issuance=issuance,
        desired=desired or None,
        active=incumbents,
    )
