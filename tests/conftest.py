"""Shared fixtures: an in-memory chain source and snapshot factories."""

import random

import pytest

from offline_election.snapshot import Candidate, Snapshot, Voter


class FakeSource:
    """In-memory stand-in for ChainSource.

    ``storage`` maps (pallet, item) to a plain value, ``maps`` maps
    (pallet, item) to a dict iterated by ``query_map``.
    """

    def __init__(self, storage=None, maps=None, constants=None,
                 head="0xhead", number=100, spec_name="polkadot"):
        self.url = "ws://fake"
        self.storage = storage or {}
        self.maps = maps or {}
        self.constants = constants or {}
        self._head = head
        self._number = number
        self._spec_name = spec_name
        self.closed = False

    def head(self):
        return self._head

    def block_number(self, at):
        return self._number

    def spec_name(self, at):
        return self._spec_name

    def query(self, pallet, storage, params=None, at=None, optional=False):
        return self.storage.get((pallet, storage))

    def query_map(self, pallet, storage, params=None, at=None, optional=False):
        return iter(list(self.maps.get((pallet, storage), {}).items()))

    def constant(self, pallet, name, at=None):
        return self.constants.get((pallet, name))

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def staking_storage():
    return dict(
        storage={
            ("Staking", "ActiveEra"): {"index": 7, "start": None},
            ("Staking", "ValidatorCount"): 2,
            ("Balances", "TotalIssuance"): 10_000,
        },
        maps={
            ("Staking", "Validators"): {
                "A": {"commission": 0},
                "B": {"commission": 0},
                "C": {"commission": 0},
            },
            ("Staking", "Ledger"): {
                "ctrlA": {"stash": "A", "active": 1000},
                "B": {"stash": "B", "active": 500},
                "N1": {"stash": "N1", "active": 300},
                "N2": {"stash": "N2", "active": 200},
                "N3": {"stash": "N3", "active": 0},
                "N4": {"stash": "N4", "active": 100},
            },
            ("Staking", "Nominators"): {
                "N1": {"targets": ["A", "B", "X"], "submitted_in": 5},
                "N2": {"targets": ["B", "C"], "submitted_in": 3},
                "N3": {"targets": ["A"], "submitted_in": 5},
                "N4": {"targets": ["C"], "submitted_in": 1},
                "A": {"targets": ["B"], "submitted_in": 5},
            },
            ("Staking", "SlashingSpans"): {
                "C": {"span_index": 1, "last_start": 2, "last_nonzero_slash": 2},
            },
            ("Staking", "ErasStakersOverview"): {
                "A": {"own": 1000, "total": 1300},
                "Z": {"own": 1, "total": 1},
            },
        },
    )


@pytest.fixture
def staking_source():
    return FakeSource(**staking_storage())


@pytest.fixture
def council_source():
    pallet = "PhragmenElection"
    return FakeSource(
        storage={
            (pallet, "Candidates"): [["D", 100]],
            (pallet, "Members"): [{"who": "E", "stake": 70, "deposit": 1}],
            (pallet, "RunnersUp"): ["F"],
            ("Balances", "TotalIssuance"): 1_000,
        },
        maps={
            (pallet, "Voting"): {
                "W1": {"stake": 100, "votes": ["D", "E", "X"], "deposit": 1},
                "W2": [50, ["F"]],
                "W3": {"stake": 0, "votes": ["D"], "deposit": 1},
            },
        },
        constants={
            (pallet, "DesiredMembers"): 1,
            (pallet, "DesiredRunnersUp"): 1,
        },
    )


@pytest.fixture
def scenario_snapshot():
    """Three candidates, V1 (100) backs A and B, V2 (50) backs B and C."""
    return Snapshot(
        [Candidate("A"), Candidate("B"), Candidate("C")],
        [Voter("V1", 100, ["A", "B"]), Voter("V2", 50, ["B", "C"])],
        block="0xscenario",
    )


def make_snapshot(seed, n_candidates=8, n_voters=30, max_targets=4,
                  min_stake=1, max_stake=10**6):
    rng = random.Random(seed)
    candidates = [
        Candidate(f"c{i:02d}", rng.randint(1, 1000)) for i in range(n_candidates)
    ]
    ids = [c.candidate_id for c in candidates]
    voters = [
        Voter(
            f"v{i:02d}",
            rng.randint(min_stake, max_stake),
            rng.sample(ids, rng.randint(1, max_targets)),
        )
        for i in range(n_voters)
    ]
    return Snapshot(candidates, voters, block=f"0x{seed:04x}")


@pytest.fixture
def random_snapshots():
    return [make_snapshot(seed) for seed in range(6)]


@pytest.fixture(scope="session")
def planck_snapshot():
    """Nominator set with real-chain balances: 10^12 to 10^15 planck per voter."""
    return make_snapshot(
        42,
        n_candidates=120,
        n_voters=2000,
        max_targets=16,
        min_stake=10**12,
        max_stake=10**15,
    )
