"""Blockchain platform name normalisation."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

UNKNOWN_PLATFORM = "Unknown"

PLATFORM_NAMES = {
    "ethereum-pow-ecosystem": "Ethereum",
    "ethereum": "Ethereum",
    "eth": "Ethereum",
    "tron20-ecosystem": "Tron",
    "tron": "Tron",
    "trx": "Tron",
    "binance-smart-chain": "BSC",
    "bsc": "BSC",
    "bnb": "BSC",
    "binance": "BSC",
    "polygon": "Polygon",
    "matic": "Polygon",
    "solana": "Solana",
    "sol": "Solana",
    "avalanche": "Avalanche",
    "avax": "Avalanche",
    "arbitrum": "Arbitrum",
    "optimism": "Optimism",
    "base": "Base",
    "bitcoin": "Bitcoin",
    "btc": "Bitcoin",
    "omni": "Bitcoin (Omni)",
    "stellar": "Stellar",
    "xlm": "Stellar",
    "algorand": "Algorand",
    "algo": "Algorand",
    "cardano": "Cardano",
    "ada": "Cardano",
    "near": "NEAR",
    "flow": "Flow",
    "hedera": "Hedera",
    "sui": "Sui",
    "aptos": "Aptos",
    "manta": "Manta",
    "thundercore": "ThunderCore",
    "ton": "TON",
    "cronos": "Cronos",
    "mantle": "Mantle",
    "linea": "Linea",
    "scroll": "Scroll",
    "blast": "Blast",
    "zksync": "zkSync Era",
    "fantom": "Fantom",
    "ftm": "Fantom",
    "celo": "Celo",
    "harmony": "Harmony",
    "moonbeam": "Moonbeam",
    "moonriver": "Moonriver",
    "kava": "Kava",
    "osmosis": "Osmosis",
    "terra": "Terra",
    "injective": "Injective",
    "cosmos": "Cosmos Hub",
    "juno": "Juno",
    "evmos": "Evmos",
}

# Checked in order when there is no exact match
PARTIAL_MATCHES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("ethereum",), "Ethereum"),
    (("tron",), "Tron"),
    (("binance", "bsc"), "BSC"),
    (("polygon", "matic"), "Polygon"),
    (("solana",), "Solana"),
    (("avalanche", "avax"), "Avalanche"),
    (("arbitrum",), "Arbitrum"),
    (("optimism",), "Optimism"),
    (("bitcoin", "btc"), "Bitcoin"),
    (("fantom", "ftm"), "Fantom"),
    (("zksync",), "zkSync Era"),
    (("cosmos",), "Cosmos Hub"),
)

PLATFORM_TAGS = ("ethereum", "binance", "solana", "tron", "polygon", "avalanche")


def normalize_platform_name(raw: Optional[str]) -> str:
    """Map chain ids and aliases ("eth", "binance-smart-chain") to display names."""
    if not raw or not isinstance(raw, str) or not raw.strip():
        return UNKNOWN_PLATFORM
    name = raw.strip().lower()
    if name in PLATFORM_NAMES:
        return PLATFORM_NAMES[name]
    for needles, display in PARTIAL_MATCHES:
        if any(needle in name for needle in needles):
            return display
    stripped = raw.strip()
    return stripped[:1].upper() + stripped[1:].lower()


def platforms_from_tags(tags: Iterable[str]) -> List[str]:
    """Infer platforms from CMC-style "<chain>-ecosystem" tags."""
    found: List[str] = []
    for tag in tags:
        lowered = str(tag).lower()
        for hint in PLATFORM_TAGS:
            if hint in lowered:
                display = normalize_platform_name(hint)
                if display not in found:
                    found.append(display)
    return found
