"""Per-network settings: address format, token and default endpoints."""

from collections import namedtuple

from .errors import NetworkConfigError

# ── Configuration ───────────────────────────────────────────────────────

CHAIN_CONFIG = {
    "polkadot": {
        "rpc": "wss://polkadot-asset-hub-rpc.polkadot.io",
        "ss58_format": 0,
        "decimals": 10_000_000_000,  # 1 DOT = 10^10 planck
        "token": "DOT",
        "seats": 300,
        "max_nominations": 16,
        "council_pallet": "PhragmenElection",
    },
    "kusama": {
        "rpc": "wss://kusama-asset-hub-rpc.polkadot.io",
        "ss58_format": 2,
        "decimals": 1_000_000_000_000,  # 1 KSM = 10^12 planck
        "token": "KSM",
        "seats": 1000,
        "max_nominations": 24,
        "council_pallet": "PhragmenElection",
    },
    "substrate": {
        "rpc": "ws://localhost:9944",
        "ss58_format": 42,
        "decimals": 1_000_000_000_000,
        "token": "UNIT",
        "seats": 100,
        "max_nominations": 16,
        "council_pallet": "Elections",
    },
    "darwinia": {
        "rpc": "wss://rpc.darwinia.network",
        "ss58_format": 18,
        "decimals": 1_000,  # 1 POWER = 10^3 units
        "token": "POWER",
        "seats": 100,
        "max_nominations": 16,
        "council_pallet": "PhragmenElection",
    },
}

# Runtime spec names that map onto one of the networks above.
SPEC_NAME_ALIASES = {
    "statemint": "polkadot",
    "asset-hub-polkadot": "polkadot",
    "statemine": "kusama",
    "asset-hub-kusama": "kusama",
    "node": "substrate",
}


class Network(namedtuple("Network", [
    "name",
    "rpc",
    "ss58_format",
    "decimals",
    "token",
    "seats",
    "max_nominations",
    "council_pallet",
])):
    __slots__ = ()

    def format_balance(self, planck, digits=2):
        """Render a native balance in whole tokens, e.g. ``1,234.50 DOT``."""
        return f"{planck / self.decimals:,.{digits}f} {self.token}"


def get_network(name):
    """Return the :class:`Network` for ``name`` or raise NetworkConfigError."""
    if name not in CHAIN_CONFIG:
        raise NetworkConfigError(
            f"Invalid network/address format {name!r}; "
            f"expected one of {', '.join(sorted(CHAIN_CONFIG))}"
        )
    return Network(name=name, **CHAIN_CONFIG[name])


def detect_network(spec_name):
    """Map a runtime spec name (``polkadot``, ``statemine`` ...) to a network."""
    name = SPEC_NAME_ALIASES.get(spec_name, spec_name)
    return get_network(name)
