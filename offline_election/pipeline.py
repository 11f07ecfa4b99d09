"""One election run: normalize -> elect -> balance -> (reduce)."""

import logging

from .election import run_election
from .reduce import reduce as reduce_result
from .weights import normalize

log = logging.getLogger(__name__)


def elect(snapshot, count, iterations=0, reduce=False):
    """Run the full offline election over ``snapshot``.

    Returns:
        (ElectionResult, CurrencyToVote used for the vote weights)
    """
    votes, convert = normalize(snapshot)
    result = run_election(votes, snapshot.candidate_ids(), count, iterations)
    if reduce:
        reduce_result(result)
    return result, convert


def default_count(snapshot, network):
    """Winner count when none is given: the chain's desired count, else the network's."""
    return snapshot.desired or network.seats
