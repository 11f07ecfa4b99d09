"""Support-graph reduction.

Edges are inserted one at a time into a rooted forest. When an edge would
close a cycle, weight is pushed around the cycle in alternating directions
until at least one edge drops to zero; that edge is removed. Every voter and
every candidate on the cycle gains on one edge exactly what it loses on the
other, so all totals are preserved. The result is acyclic, which makes a
second reduction a no-op.

The forest keeps one parent pointer per node. Cycles are found by walking
both endpoints up to their common ancestor, and linking two trees re-roots
the one with the shorter path first.
"""

import logging

from .errors import InternalInvariantViolation

log = logging.getLogger(__name__)


def _voter(voter_id):
    return ("v", voter_id)


def _candidate(candidate_id):
    return ("c", candidate_id)


def _edge_key(a, b):
    """(voter_id, candidate_id) of the edge between nodes ``a`` and ``b``."""
    if a[0] == "v":
        return a[1], b[1]
    return b[1], a[1]


def _path_to_root(parent, node):
    path = [node]
    while parent.get(path[-1]) is not None:
        path.append(parent[path[-1]])
    return path


def _reroot(parent, path):
    """Make ``path[0]`` the root of its tree; ``path`` ends at the old root."""
    for child, node in zip(path[1:], path):
        parent[child] = node
    parent[path[0]] = None


def _link(parent, a, b):
    path_a = _path_to_root(parent, a)
    path_b = _path_to_root(parent, b)
    if len(path_a) <= len(path_b):
        _reroot(parent, path_a)
        parent[a] = b
    else:
        _reroot(parent, path_b)
        parent[b] = a


def _unlink(parent, a, b):
    if parent.get(a) == b:
        parent[a] = None
    else:
        parent[b] = None


def _cycle(path_v, path_c):
    """Closed node list v .. common ancestor .. c, v for two same-tree paths."""
    on_c = {node: i for i, node in enumerate(path_c)}
    for i, node in enumerate(path_v):
        if node in on_c:
            return path_v[:i + 1] + path_c[:on_c[node]][::-1] + [path_v[0]]
    raise InternalInvariantViolation("reduce lost track of a forest path")


def _rotate(weights, cycle):
    """Shift weight around ``cycle`` until an edge reaches zero.

    ``cycle`` is a closed node list starting and ending at the same voter;
    even-indexed edges form one direction, odd-indexed the other.
    """
    edges = [_edge_key(cycle[i], cycle[i + 1]) for i in range(len(cycle) - 1)]
    plus = edges[0::2]
    minus = edges[1::2]
    min_plus = min(weights[e] for e in plus)
    min_minus = min(weights[e] for e in minus)
    if min_minus <= min_plus:
        delta, grow, shrink = min_minus, plus, minus
    else:
        delta, grow, shrink = min_plus, minus, plus
    for e in grow:
        weights[e] += delta
    for e in shrink:
        weights[e] -= delta
    return edges


def reduce_supports(edges):
    """Reduce a list of (voter, candidate, weight) edges to a forest.

    Returns:
        dict of (voter, candidate) -> weight with only non-zero edges.
    """
    weights = {}
    parent = {}
    for voter_id, candidate_id, weight in sorted(edges):
        if weight <= 0:
            continue
        v = _voter(voter_id)
        c = _candidate(candidate_id)
        key = (voter_id, candidate_id)
        weights[key] = weight
        path_v = _path_to_root(parent, v)
        path_c = _path_to_root(parent, c)
        if path_v[-1] != path_c[-1]:
            _link(parent, v, c)
            continue

        cycle = _cycle(path_v, path_c)
        cycle_edges = _rotate(weights, cycle)
        for a, b, edge in zip(cycle, cycle[1:], cycle_edges):
            if edge != key and weights[edge] == 0:
                _unlink(parent, a, b)
                del weights[edge]
        if weights[key] == 0:
            del weights[key]
        else:
            _link(parent, v, c)
    return weights


def reduce(result):
    """Remove redundant edges from ``result`` in place.

    Returns:
        number of removed edges.

    Raises:
        InternalInvariantViolation: a voter or candidate total drifted.
    """
    voter_before = result.voter_totals()
    candidate_before = result.candidate_totals()
    edges_before = result.edge_count()

    edges = [
        (voter, candidate, weight)
        for candidate, support in result.supports.items()
        for voter, weight in support.voters
    ]
    reduced = reduce_supports(edges)

    for support in result.supports.values():
        support.voters = []
    for (voter, candidate), weight in sorted(reduced.items()):
        result.supports[candidate].voters.append((voter, weight))
    for support in result.supports.values():
        support.voters.sort()

    if result.voter_totals() != {v: w for v, w in voter_before.items() if w > 0}:
        raise InternalInvariantViolation("reduce changed a voter's committed stake")
    for candidate, support in result.supports.items():
        total = sum(w for _, w in support.voters)
        if total != candidate_before[candidate] or total != support.total:
            raise InternalInvariantViolation(
                f"reduce changed the backing of {candidate}"
            )
    removed = edges_before - result.edge_count()
    if removed < 0:
        raise InternalInvariantViolation("reduce added edges")

    result.reduced = True
    log.info("reduce removed %d of %d edges", removed, edges_before)
    return removed
