"""Supported destination chains for bridged settlement (EVM testnets)."""

from __future__ import annotations

from dataclasses import dataclass

from kiosk_settlement.services.errors import InputError


@dataclass(frozen=True)
class ChainInfo:
    """Static description of a bridgeable chain."""

    key: str
    name: str
    bridge_name: str
    chain_id: int
    explorer_url: str
    rpc_url: str
    is_testnet: bool = True

    def tx_url(self, tx_hash: str) -> str:
        """Return the block explorer URL of a transaction."""
        return f"{self.explorer_url}/tx/{tx_hash}"


SOURCE_CHAIN_KEY = "arc"

SUPPORTED_CHAINS: dict[str, ChainInfo] = {
    "arc": ChainInfo(
        key="arc",
        name="Arc Testnet",
        bridge_name="Arc_Testnet",
        chain_id=0,
        explorer_url="https://explorer.arc.network",
        rpc_url="https://rpc-testnet.arc.network",
    ),
    "base": ChainInfo(
        key="base",
        name="Base Sepolia",
        bridge_name="Base_Sepolia",
        chain_id=84532,
        explorer_url="https://sepolia.basescan.org",
        rpc_url="https://sepolia.base.org",
    ),
    "ethereum": ChainInfo(
        key="ethereum",
        name="Ethereum Sepolia",
        bridge_name="Ethereum_Sepolia",
        chain_id=11155111,
        explorer_url="https://sepolia.etherscan.io",
        rpc_url="https://rpc.sepolia.org",
    ),
    "arbitrum": ChainInfo(
        key="arbitrum",
        name="Arbitrum Sepolia",
        bridge_name="Arbitrum_Sepolia",
        chain_id=421614,
        explorer_url="https://sepolia.arbiscan.io",
        rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
    ),
    "polygon": ChainInfo(
        key="polygon",
        name="Polygon Amoy",
        bridge_name="Polygon_Amoy_Testnet",
        chain_id=80002,
        explorer_url="https://amoy.polygonscan.com",
        rpc_url="https://rpc-amoy.polygon.technology",
    ),
    "optimism": ChainInfo(
        key="optimism",
        name="Optimism Sepolia",
        bridge_name="OP_Sepolia",
        chain_id=11155420,
        explorer_url="https://sepolia-optimism.etherscan.io",
        rpc_url="https://sepolia.optimism.io",
    ),
    "avalanche": ChainInfo(
        key="avalanche",
        name="Avalanche Fuji",
        bridge_name="Avalanche_Fuji",
        chain_id=43113,
        explorer_url="https://testnet.snowtrace.io",
        rpc_url="https://api.avax-test.network/ext/bc/C/rpc",
    ),
    "linea": ChainInfo(
        key="linea",
        name="Linea Sepolia",
        bridge_name="Linea_Sepolia",
        chain_id=59141,
        explorer_url="https://sepolia.lineascan.build",
        rpc_url="https://rpc.sepolia.linea.build",
    ),
}

# The source pool chain is never a valid destination.
CHAIN_OPTIONS: tuple[str, ...] = tuple(k for k in SUPPORTED_CHAINS if k != SOURCE_CHAIN_KEY)


def get_chain_by_key(key: str) -> ChainInfo | None:
    """Return the destination chain for ``key`` (case-insensitive), if supported."""
    normalized = (key or "").strip().lower()
    if normalized not in CHAIN_OPTIONS:
        return None
    return SUPPORTED_CHAINS[normalized]


def require_chain(key: str) -> ChainInfo:
    """Return the destination chain for ``key`` or raise ``InputError``."""
    chain = get_chain_by_key(key)
    if chain is None:
        raise InputError(f"Unsupported chain: {key}")
    return chain


def format_chain_list() -> str:
    """Return a numbered list of selectable chains."""
    return "\n".join(
        f"  {index}. {SUPPORTED_CHAINS[key].name} ({key})"
        for index, key in enumerate(CHAIN_OPTIONS, start=1)
    )
