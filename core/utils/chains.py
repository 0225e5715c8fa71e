"""
Chain Utilities

Every price source names chains differently:
- The oracle uses numeric chain IDs and short path segments (/price/bsc, /price/base)
- DexScreener uses lowercase slugs ("bsc", "base", "ethereum")
- CoinGecko on-chain endpoints use network ids ("bsc", "base", "eth")
- CoinGecko simple price endpoints use asset platform ids ("binance-smart-chain")

This module keeps one table of supported chains so that each adapter can look up
its own identifier from a chain ID.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ChainInfo(BaseModel):
    """
    Supported chain description.

    Attributes:
        id: EVM chain ID
        name: Human readable name
        short_name: Ticker style short name
        slug: DexScreener chain identifier
        gecko_network: CoinGecko on-chain network id
        coingecko_platform: CoinGecko asset platform id
        oracle_path: Path segment of the oracle's chain-specific price endpoint, if any
        is_testnet: True for test networks
    """

    id: int
    name: str
    short_name: str
    slug: str
    gecko_network: str
    coingecko_platform: Optional[str] = None
    oracle_path: Optional[str] = Field(
        None,
        description="Chain-specific oracle endpoint (/price/<oracle_path>)"
    )
    is_testnet: bool = False


BSC_CHAIN_ID = 56
BASE_CHAIN_ID = 8453
ETHEREUM_CHAIN_ID = 1
SEPOLIA_CHAIN_ID = 11155111


SUPPORTED_CHAINS: Dict[int, ChainInfo] = {
    BSC_CHAIN_ID: ChainInfo(
        id=BSC_CHAIN_ID,
        name="BNB Smart Chain",
        short_name="BSC",
        slug="bsc",
        gecko_network="bsc",
        coingecko_platform="binance-smart-chain",
        oracle_path="bsc",
    ),
    BASE_CHAIN_ID: ChainInfo(
        id=BASE_CHAIN_ID,
        name="Base",
        short_name="BASE",
        slug="base",
        gecko_network="base",
        coingecko_platform="base",
        oracle_path="base",
    ),
    ETHEREUM_CHAIN_ID: ChainInfo(
        id=ETHEREUM_CHAIN_ID,
        name="Ethereum",
        short_name="ETH",
        slug="ethereum",
        gecko_network="eth",
        coingecko_platform="ethereum",
    ),
    SEPOLIA_CHAIN_ID: ChainInfo(
        id=SEPOLIA_CHAIN_ID,
        name="Sepolia Testnet",
        short_name="SEP",
        slug="sepolia",
        gecko_network="sepolia-testnet",
        is_testnet=True,
    ),
}


def get_chain_info(chain_id: Optional[int]) -> Optional[ChainInfo]:
    """Return chain information for a chain ID, or None if unsupported."""
    if chain_id is None:
        return None
    return SUPPORTED_CHAINS.get(chain_id)


def get_chain_by_slug(slug: str) -> Optional[ChainInfo]:
    """
    Look up a chain by its DexScreener slug (case-insensitive).

    Example:
        >>> get_chain_by_slug("BSC").id
        56
    """
    slug = slug.lower()
    for chain in SUPPORTED_CHAINS.values():
        if chain.slug == slug:
            return chain
    return None


def is_supported_chain(chain_id: Optional[int]) -> bool:
    return get_chain_info(chain_id) is not None


def get_production_chains() -> List[ChainInfo]:
    return [chain for chain in SUPPORTED_CHAINS.values() if not chain.is_testnet]
