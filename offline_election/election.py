"""Election driver: seq-phragmen, balancing rounds and integer supports."""

import logging

from . import npos
from .errors import InsufficientCandidates, InternalInvariantViolation
from .weights import U64_MAX

log = logging.getLogger(__name__)

# Relative slack allowed on the float imbalance between balancing rounds.
IMBALANCE_TOLERANCE = 1e-9


class Support:
    def __init__(self, total=0, voters=None):
        self.total = total
        self.voters = voters if voters is not None else []

    def __eq__(self, other):
        return (
            isinstance(other, Support)
            and self.total == other.total
            and self.voters == other.voters
        )

    def __repr__(self):
        return f"Support(total={self.total}, voters={self.voters})"


class ElectionResult:
    """Winners in election order and their integer supports.

    ``supports`` maps every winner to a :class:`Support` whose voters are
    ``(voter_id, weight)`` pairs sorted by voter id.
    """

    def __init__(self, winners, supports, imbalance=0.0, iterations=0):
        self.winners = list(winners)
        self.supports = supports
        self.imbalance = imbalance
        self.iterations = iterations
        self.reduced = False

    def __eq__(self, other):
        return (
            isinstance(other, ElectionResult)
            and self.winners == other.winners
            and self.supports == other.supports
        )

    def edge_count(self):
        return sum(len(s.voters) for s in self.supports.values())

    def voter_totals(self):
        totals = {}
        for support in self.supports.values():
            for voter, weight in support.voters:
                totals[voter] = totals.get(voter, 0) + weight
        return totals

    def candidate_totals(self):
        return {c: s.total for c, s in self.supports.items()}


def _check_weights(votes):
    for voter_id, weight, _ in votes:
        if not 0 <= weight <= U64_MAX:
            raise InternalInvariantViolation(
                f"vote weight {weight} of {voter_id} outside the u64 domain"
            )


def build_supports(nomlist, elected):
    supports = {c.candidate_id: Support() for c in elected}
    for nom in nomlist:
        for candidate_id, weight in npos.staked_assignment(nom):
            support = supports[candidate_id]
            support.voters.append((nom.nominator_id, weight))
            support.total += weight
    for support in supports.values():
        support.voters.sort()
    return supports


def run_election(votes, candidate_ids, k, iterations=0):
    """Elect ``k`` of ``candidate_ids`` from normalized ``votes``.

    Args:
        votes: list of (voter_id, weight, targets) as built by
            :func:`offline_election.weights.normalize`.
        candidate_ids: all candidates.
        k: number of winners.
        iterations: exact number of balancing rounds to run.

    Returns:
        ElectionResult

    Raises:
        InsufficientCandidates: fewer than ``k`` candidates have approval stake.
        InternalInvariantViolation: a weight left the u64 domain or a
            balancing round increased the imbalance.
    """
    if k < 1:
        raise ValueError(f"winner count must be at least 1, got {k}")
    if iterations < 0:
        raise ValueError(f"iterations must be non-negative, got {iterations}")
    _check_weights(votes)

    nomlist, candidates = npos.setuplists(
        sorted(votes, key=lambda v: v[0]), candidate_ids
    )
    npos.calculate_approval(nomlist)
    eligible = npos.eligible(candidates)
    if len(eligible) < k:
        raise InsufficientCandidates(k, len(eligible))

    log.info("running seq-phragmen for %d seats over %d candidates and %d voters",
             k, len(candidates), len(nomlist))
    elected = npos.seq_phragmen(nomlist, candidates, k)
    if len(elected) != k:
        raise InternalInvariantViolation(
            f"seq-phragmen elected {len(elected)} of {k} seats"
        )

    score = npos.imbalance(candidates)
    for round_num in range(iterations):
        spread = npos.equalise_round(nomlist)
        new_score = npos.imbalance(candidates)
        log.debug("balancing round %d: max spread %.4f, imbalance %.6e",
                  round_num + 1, spread, new_score)
        if new_score > score * (1 + IMBALANCE_TOLERANCE):
            raise InternalInvariantViolation(
                f"balancing round {round_num + 1} raised the imbalance "
                f"from {score!r} to {new_score!r}"
            )
        score = new_score

    supports = build_supports(nomlist, elected)
    result = ElectionResult(
        [c.candidate_id for c in elected], supports, score, iterations
    )
    check_conservation(result, {v[0]: v[1] for v in votes})
    return result


def check_conservation(result, budgets):
    """Every voter's committed weight must stay within its budget."""
    for voter, committed in result.voter_totals().items():
        if committed > budgets.get(voter, 0):
            raise InternalInvariantViolation(
                f"voter {voter} commits {committed}, more than its "
                f"{budgets.get(voter, 0)}"
            )
    for candidate, support in result.supports.items():
        if support.total != sum(w for _, w in support.voters):
            raise InternalInvariantViolation(
                f"support total of {candidate} does not match its edges"
            )
