"""Conversion of native balances into the solver's u64 vote-weight domain."""

import logging
import warnings

from .errors import PrecisionLossWarning

log = logging.getLogger(__name__)

U64_MAX = 2**64 - 1


class CurrencyToVote:
    """Scale balances by ``max(issuance / u64::MAX, 1)``.

    The factor is derived from total issuance so that any balance up to the
    issuance fits a u64 weight.
    """

    def __init__(self, issuance):
        if issuance < 0:
            raise ValueError(f"negative issuance {issuance}")
        self.issuance = issuance
        self.factor = max(issuance // U64_MAX, 1)

    def to_vote(self, balance, who=None):
        weight = balance // self.factor
        if weight > U64_MAX:
            warnings.warn(
                f"balance {balance} of {who or 'voter'} exceeds the vote weight "
                f"domain; clamped to {U64_MAX}",
                PrecisionLossWarning,
                stacklevel=2,
            )
            weight = U64_MAX
        return weight

    def to_currency(self, weight):
        return weight * self.factor


def normalize(snapshot, convert=None):
    """Build the solver's vote list from a snapshot.

    Every voter becomes ``(voter_id, weight, targets)``; every candidate with
    a self stake votes for itself under its own id. Voters whose weight
    rounds down to zero are kept, they simply carry no influence.

    Returns:
        (votes sorted by voter id, the CurrencyToVote used)
    """
    convert = convert or CurrencyToVote(snapshot.issuance)
    votes = []
    for voter in snapshot.voters:
        weight = convert.to_vote(voter.stake, voter.voter_id)
        votes.append((voter.voter_id, weight, list(voter.targets)))
    for candidate in snapshot.candidates:
        if candidate.self_stake > 0:
            weight = convert.to_vote(candidate.self_stake, candidate.candidate_id)
            votes.append((candidate.candidate_id, weight, [candidate.candidate_id]))
    votes.sort(key=lambda v: v[0])
    log.debug("normalized %d votes with factor %d", len(votes), convert.factor)
    return votes, convert
