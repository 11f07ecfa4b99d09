# Adapted from https://github.com/paritytech/consensus/blob/master/NPoS/npos.py
"""Sequential Phragmén and star balancing over float loads.

Candidates are always visited in id order and the lowest score strictly
wins, so ties go to the smallest candidate id and runs are reproducible.
"""

import math


class Edge:
    def __init__(self, nominator, candidate):
        self.nominator = nominator
        self.candidate = candidate
        self.load = 0.0
        self.weight = 0.0


class Nominator:
    def __init__(self, nominator_id, budget):
        self.nominator_id = nominator_id
        self.budget = budget
        self.edges = []
        self.load = 0.0

    def elected_edges(self):
        return [e for e in self.edges if e.candidate.elected]


class Candidate:
    def __init__(self, candidate_id):
        self.candidate_id = candidate_id
        self.approval_stake = 0
        self.backed_stake = 0.0
        self.elected = False
        self.score = 0.0
        self.edges = []


def setuplists(votelist, candidate_ids):
    """Link voters and candidates.

    Args:
        votelist: iterable of (voter_id, budget, targets).
        candidate_ids: every candidate, including ones nobody votes for.

    Returns:
        (nominators in input order, candidates sorted by id)
    """
    candidates = {cid: Candidate(cid) for cid in candidate_ids}
    nomlist = []
    for voter_id, budget, targets in votelist:
        nom = Nominator(voter_id, budget)
        for target in targets:
            candidate = candidates[target]
            edge = Edge(nom, candidate)
            nom.edges.append(edge)
            candidate.edges.append(edge)
        nomlist.append(nom)
    return nomlist, [candidates[cid] for cid in sorted(candidates)]


def calculate_approval(nomlist):
    for nom in nomlist:
        for edge in nom.edges:
            edge.candidate.approval_stake += nom.budget


def eligible(candidates):
    return [c for c in candidates if c.approval_stake > 0]


def seq_phragmen(nomlist, candidates, num_to_elect):
    """Elect up to ``num_to_elect`` candidates, lowest score first.

    Candidates without approval stake are never elected. Returns the elected
    candidates in election order; edge weights of every nominator sum to its
    budget over its elected targets.
    """
    elected_candidates = []
    for _ in range(num_to_elect):
        best_candidate = None
        best_score = math.inf
        for c in candidates:
            if c.elected or c.approval_stake <= 0:
                continue
            c.score = (
                1 + sum(e.nominator.budget * e.nominator.load for e in c.edges)
            ) / c.approval_stake
            if c.score < best_score:
                best_score = c.score
                best_candidate = c

        if best_candidate is None:
            break

        best_candidate.elected = True
        elected_candidates.append(best_candidate)

        for edge in best_candidate.edges:
            nom = edge.nominator
            edge.load = best_candidate.score - nom.load
            nom.load = best_candidate.score

    for nom in nomlist:
        for edge in nom.edges:
            if nom.load > 0.0 and edge.candidate.elected:
                edge.weight = nom.budget * edge.load / nom.load
                edge.candidate.backed_stake += edge.weight
            else:
                edge.weight = 0.0

    return elected_candidates


def equalise(nom):
    """Water-fill ``nom``'s budget over its elected targets.

    The other voters' backing stays fixed; the budget is poured onto the least
    backed targets until they reach a common level, which minimizes the sum
    of squared backings of those targets. Targets with equal backing are
    filled in candidate id order.

    Returns:
        the spread before filling: most backed target this voter supports,
        minus least backed target, plus any budget left unassigned.
    """
    elected_edges = nom.elected_edges()
    if len(elected_edges) < 2:
        return 0.0

    supported = [e.candidate.backed_stake for e in elected_edges if e.weight > 0.0]
    if supported:
        unused = nom.budget - sum(e.weight for e in elected_edges)
        spread = max(supported) - min(e.candidate.backed_stake for e in elected_edges)
        spread += unused
    else:
        spread = nom.budget

    for edge in elected_edges:
        edge.candidate.backed_stake -= edge.weight
        edge.weight = 0.0
    elected_edges.sort(
        key=lambda e: (e.candidate.backed_stake, e.candidate.candidate_id)
    )

    # grow the filled prefix while the next target sits below the level
    filled = 1
    others = elected_edges[0].candidate.backed_stake
    level = nom.budget + others
    for edge in elected_edges[1:]:
        backed = edge.candidate.backed_stake
        if backed >= level:
            break
        filled += 1
        others += backed
        level = (nom.budget + others) / filled

    for edge in elected_edges[:filled]:
        # rounding at planck scale can land a hair under zero
        edge.weight = max(0.0, level - edge.candidate.backed_stake)
        edge.candidate.backed_stake += edge.weight

    return spread


def equalise_round(nomlist):
    """One balancing pass over every nominator; returns the largest spread."""
    max_diff = 0.0
    for nom in nomlist:
        max_diff = max(equalise(nom), max_diff)
    return max_diff


def imbalance(candidates):
    """Sum of squared backings of the elected candidates."""
    return math.fsum(c.backed_stake ** 2 for c in candidates if c.elected)


def staked_assignment(nom):
    """Integer split of ``nom.budget`` over its elected edges.

    Floors every float weight and hands the remaining units to the edges with
    the largest fractional parts (ties by candidate id), so the parts add up
    to the budget exactly. Float weights below zero count as zero.

    Returns:
        list of (candidate_id, weight) with non-zero weight, by candidate id.
    """
    edges = nom.elected_edges()
    if not edges:
        return []
    weights = [max(e.weight, 0.0) for e in edges]
    total = math.fsum(weights)
    if total <= 0.0:
        return []
    shares = [(e, nom.budget * w / total) for e, w in zip(edges, weights)]

    parts = {}
    remainders = []
    for edge, share in shares:
        floor = min(int(share), nom.budget)
        parts[edge.candidate.candidate_id] = floor
        remainders.append((share - floor, edge.candidate.candidate_id))

    left = nom.budget - sum(parts.values())
    remainders.sort(key=lambda r: (-r[0], r[1]))
    i = 0
    while left > 0:
        parts[remainders[i % len(remainders)][1]] += 1
        left -= 1
        i += 1
    while left < 0:
        cid = max(parts, key=lambda c: (parts[c], c))
        parts[cid] -= 1
        left += 1

    return [(cid, w) for cid, w in sorted(parts.items()) if w > 0]
