import pytest

from offline_election import npos
from offline_election.election import run_election
from offline_election.errors import InsufficientCandidates, InternalInvariantViolation
from offline_election.export import serialize
from offline_election.pipeline import default_count, elect
from offline_election.networks import get_network
from offline_election.weights import U64_MAX, normalize


def _elect(snapshot, k, iterations=0):
    votes, _ = normalize(snapshot)
    return run_election(votes, snapshot.candidate_ids(), k, iterations)


def test_scenario_three_candidates(scenario_snapshot):
    result = _elect(scenario_snapshot, 2)

    assert result.winners == ["B", "A"]
    totals = result.candidate_totals()
    assert sum(totals.values()) == 150
    assert totals == {"A": 60, "B": 90}
    assert result.supports["A"].voters == [("V1", 60)]
    assert result.supports["B"].voters == [("V1", 40), ("V2", 50)]
    assert result.voter_totals() == {"V1": 100, "V2": 50}


def test_too_few_candidates(scenario_snapshot):
    with pytest.raises(InsufficientCandidates) as excinfo:
        _elect(scenario_snapshot, 5)

    assert excinfo.value.requested == 5
    assert excinfo.value.eligible == 3


def test_candidates_without_approval_are_not_eligible(scenario_snapshot):
    votes, _ = normalize(scenario_snapshot)

    with pytest.raises(InsufficientCandidates):
        run_election(votes, scenario_snapshot.candidate_ids() + ["D"], 4)


def test_ties_go_to_the_smallest_candidate_id():
    votes = [("V1", 100, ["B"]), ("V2", 100, ["A"])]

    result = run_election(votes, ["A", "B"], 1)

    assert result.winners == ["A"]


@pytest.mark.parametrize("k, iterations", [(0, 0), (1, -1)])
def test_invalid_arguments(scenario_snapshot, k, iterations):
    with pytest.raises(ValueError):
        _elect(scenario_snapshot, k, iterations)


def test_weight_outside_u64_is_an_invariant_violation():
    with pytest.raises(InternalInvariantViolation):
        run_election([("V1", U64_MAX + 1, ["A"])], ["A"], 1)


@pytest.mark.parametrize("iterations", [0, 1, 5])
def test_weight_conservation(random_snapshots, iterations):
    for snapshot in random_snapshots:
        votes, _ = normalize(snapshot)
        result = run_election(votes, snapshot.candidate_ids(), 4, iterations)
        budgets = {voter: weight for voter, weight, _ in votes}
        winners = set(result.winners)

        committed = result.voter_totals()
        for voter, weight, targets in votes:
            if winners & set(targets):
                assert committed[voter] == weight
            else:
                assert voter not in committed
        assert all(committed[v] <= budgets[v] for v in committed)


def test_winner_count(random_snapshots):
    for snapshot in random_snapshots:
        for k in (1, 3, len(snapshot.candidates)):
            result = _elect(snapshot, k)
            assert len(result.winners) == k
            assert len(set(result.winners)) == k
            assert set(result.supports) == set(result.winners)


def test_determinism(random_snapshots):
    for snapshot in random_snapshots:
        first = _elect(snapshot, 4, iterations=3)
        second = _elect(snapshot, 4, iterations=3)

        assert first == second
        assert serialize(first) == serialize(second)


def test_balancing_is_monotonic(random_snapshots):
    for snapshot in random_snapshots:
        scores = [_elect(snapshot, 4, r).imbalance for r in (0, 1, 2, 5, 10)]
        for earlier, later in zip(scores, scores[1:]):
            assert later <= earlier * (1 + 1e-9)


def test_balancing_keeps_the_winner_set(random_snapshots):
    for snapshot in random_snapshots:
        assert _elect(snapshot, 4, 0).winners == _elect(snapshot, 4, 10).winners


def test_elect_with_reduce(random_snapshots):
    snapshot = random_snapshots[0]

    plain, _ = elect(snapshot, 4, iterations=2)
    reduced, convert = elect(snapshot, 4, iterations=2, reduce=True)

    assert convert.factor == 1
    assert reduced.reduced
    assert reduced.candidate_totals() == plain.candidate_totals()
    assert reduced.edge_count() <= plain.edge_count()


def test_default_count(scenario_snapshot):
    network = get_network("polkadot")

    assert default_count(scenario_snapshot, network) == network.seats
    scenario_snapshot.desired = 2
    assert default_count(scenario_snapshot, network) == 2


@pytest.mark.parametrize("reduce", [False, True])
def test_planck_scale_conservation(planck_snapshot, reduce):
    votes, _ = normalize(planck_snapshot)

    result, convert = elect(planck_snapshot, 60, iterations=3, reduce=reduce)

    assert convert.factor == 1
    winners = set(result.winners)
    committed = result.voter_totals()
    for voter, weight, targets in votes:
        if winners & set(targets):
            assert committed[voter] == weight
    for support in result.supports.values():
        assert all(weight > 0 for _, weight in support.voters)
        assert support.total == sum(weight for _, weight in support.voters)


def test_planck_scale_balancing_is_monotonic(planck_snapshot):
    scores = [_elect(planck_snapshot, 60, r).imbalance for r in (0, 1, 3)]

    for earlier, later in zip(scores, scores[1:]):
        assert later <= earlier * (1 + 1e-9)


def _star(votes, candidate_ids):
    nomlist, candidates = npos.setuplists(votes, candidate_ids)
    for candidate in candidates:
        candidate.elected = True
    return nomlist, {c.candidate_id: c for c in candidates}


def test_equalise_fills_the_least_backed_target():
    nomlist, candidates = _star([("V1", 10, ["A", "B"]), ("V2", 4, ["B"])], ["A", "B"])
    v1, v2 = nomlist
    for edge, weight in zip(v1.edges + v2.edges, (5.0, 5.0, 4.0)):
        edge.weight = weight
        edge.candidate.backed_stake += weight

    spread = npos.equalise(v1)

    assert spread == 4.0
    assert [e.weight for e in v1.edges] == [7.0, 3.0]
    assert candidates["A"].backed_stake == candidates["B"].backed_stake == 7.0


def test_staked_assignment_ignores_negative_float_weights():
    budget = 10**15 + 3
    nomlist, _ = _star([("V1", budget, ["A", "B", "C"])], ["A", "B", "C"])
    a, b, c = nomlist[0].edges
    a.weight, b.weight, c.weight = 6e14, 4e14, -1.0

    parts = npos.staked_assignment(nomlist[0])

    assert [cid for cid, _ in parts] == ["A", "B"]
    assert sum(weight for _, weight in parts) == budget
