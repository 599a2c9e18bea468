"""Tag and name based classification of assets.

Every adapter runs its records through :class:`AssetClassifier` so that
``asset_category`` and ``pegged_asset`` are derived the same way regardless
of which API reported the asset.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, NamedTuple, Optional

from stablewatch.core.logging import get_logger
from stablewatch.schemas.aggregated import STABLECOIN, TOKENIZED_ASSET

log = get_logger("services.classifier")

OTHER = "Other"

STABLECOIN_TAGS = frozenset({"stablecoin"})
TOKENIZED_ASSET_TAGS = frozenset({"tokenized-assets"})
ASSET_BACKED_TAGS = frozenset({"asset-backed-stablecoin"})

TOKENIZED_SUBTYPES: Dict[str, str] = {
    "tokenized-gold": "Gold",
    "tokenized-silver": "Silver",
    "tokenized-etfs": "ETF",
    "tokenized-stock": "Stocks",
    "tokenized-real-estate": "Real Estate",
    "tokenized-treasury-bills": "Treasury Bills",
    "tokenized-commodities": "Commodities",
}

CURRENCY_ALIASES: Dict[str, str] = {
    "XAU": "Gold",
    "XAG": "Silver",
    "XAUT": "Gold",
    "PAXG": "Gold",
    "GOLD": "Gold",
    "SILVER": "Silver",
    "XDR": "Special Drawing Rights",
    "SDR": "Special Drawing Rights",
    "DOLLAR": "USD",
    "EURO": "EUR",
    "POUND": "GBP",
    "YEN": "JPY",
    "YUAN": "CNY",
    "RENMINBI": "CNY",
    "FRANC": "CHF",
    "RUPEE": "INR",
    "WON": "KRW",
    "REAL": "BRL",
    "PESO": "MXN",
    "RAND": "ZAR",
    "RUBLE": "RUB",
    "ROUBLE": "RUB",
}

ISO_CURRENCY_CODES = frozenset(
    """
    USD EUR GBP JPY CHF CAD AUD NZD SEK NOK DKK PLN CZK HUF RON BGN RUB TRY CNY
    HKD SGD KRW THB MYR IDR PHP VND INR PKR LKR BDT AED SAR QAR KWD BHD OMR JOD
    ILS EGP BRL ARS CLP COP PEN UYU PYG BOB VES ZAR NGN GHS KES UGX TZS XOF XAF
    MAD TND MXN GTQ CRC JMD DOP TTD BMD ZWD ZWL BWP XDR
    """.split()
)

# Symbols such as USDe, EURS or GBPT start with one of these codes
SYMBOL_PREFIX_CODES = ("USD", "EUR", "GBP", "JPY", "CHF", "CNY", "SGD", "AUD", "CAD", "TRY", "BRL", "MXN", "INR", "KRW")

CURRENCY_NAME_PATTERNS = (
    ("USD", re.compile(r"\b(?:dollar|usd)\b")),
    ("EUR", re.compile(r"\b(?:euro|eur)\b")),
    ("GBP", re.compile(r"\b(?:pound|sterling|gbp)\b")),
    ("JPY", re.compile(r"\b(?:yen|jpy)\b")),
    ("CNY", re.compile(r"\b(?:yuan|renminbi|cny)\b")),
    ("CHF", re.compile(r"\b(?:franc|chf)\b")),
    ("INR", re.compile(r"\b(?:rupee|inr)\b")),
    ("BRL", re.compile(r"\b(?:real|brl)\b")),
    ("RUB", re.compile(r"\b(?:ruble|rouble|rub)\b")),
    ("KRW", re.compile(r"\b(?:won|krw)\b")),
    ("ZAR", re.compile(r"\b(?:rand|zar)\b")),
    ("TRY", re.compile(r"\b(?:lira|try)\b")),
    ("MXN", re.compile(r"\b(?:peso|mxn)\b")),
)

GOLD_SYMBOLS = re.compile(r"xau|paxg|xaut")
SILVER_SYMBOLS = re.compile(r"xag")
TOKENIZED_NAME_PATTERNS = (
    ("Gold", re.compile(r"gold")),
    ("Silver", re.compile(r"silver")),
    ("ETF", re.compile(r"etf")),
    ("Treasury Bills", re.compile(r"treasury")),
    ("Stocks", re.compile(r"stock")),
    ("Real Estate", re.compile(r"real[ -]estate|estate")),
)

CURRENCY_TAG = re.compile(r"^([a-z]{3})-stablecoin$")
PEGGED_TAG = re.compile(r"^pegged([a-z0-9]+)$")
SYMBOL_CODE = re.compile(r"^([a-z]{3})[tc]?$|^([a-z]{3})[-_.]")
WORD_CODE = re.compile(r"\b([a-z]{3})\b")


class Classification(NamedTuple):
    asset_category: str
    pegged_asset: Optional[str]


class AssetClassifier:
    """Derives asset category and pegged asset from tags, symbol and name."""

    def __init__(
        self,
        stablecoin_tags: Iterable[str] = STABLECOIN_TAGS,
        tokenized_tags: Iterable[str] = TOKENIZED_ASSET_TAGS,
        currency_aliases: Optional[Dict[str, str]] = None,
    ):
        self.stablecoin_tags = {t.lower() for t in stablecoin_tags}
        self.tokenized_tags = {t.lower() for t in tokenized_tags}
        self.aliases = {k.upper(): v for k, v in (currency_aliases or CURRENCY_ALIASES).items()}

    def classify(
        self,
        tags: Iterable[str] = (),
        name: Optional[str] = None,
        symbol: Optional[str] = None,
        slug: Optional[str] = None,
    ) -> Classification:
        tags_lower = [str(t).lower() for t in tags or () if t is not None]
        name_lower = (name or "").lower()
        symbol_lower = (symbol or "").lower()
        slug_lower = (slug or "").lower()

        category = self.classify_category(tags_lower)
        pegged = self._classify_pegged(tags_lower, name_lower, symbol_lower, slug_lower, category)
        log.debug(f"Classified {symbol or name}: category={category} pegged={pegged}")
        return Classification(category, pegged)

    def is_tokenized(self, tags: Iterable[str]) -> bool:
        lowered = {str(t).lower() for t in tags or ()}
        return bool(lowered & self.tokenized_tags) or any(t in TOKENIZED_SUBTYPES for t in lowered)

    def classify_category(self, tags_lower: List[str]) -> str:
        if any(t in self.stablecoin_tags for t in tags_lower):
            return STABLECOIN
        if any(CURRENCY_TAG.match(t) or PEGGED_TAG.match(t) for t in tags_lower):
            return STABLECOIN
        if self.is_tokenized(tags_lower):
            return TOKENIZED_ASSET
        return OTHER

    # -------------------------------------------------------------------------
    # Pegged asset
    # -------------------------------------------------------------------------
    def _classify_pegged(
        self, tags: List[str], name: str, symbol: str, slug: str, category: str
    ) -> Optional[str]:
        if category == STABLECOIN:
            for tag in tags:
                match = CURRENCY_TAG.match(tag)
                if match:
                    return self._alias(match.group(1).upper())
            for tag in tags:
                match = PEGGED_TAG.match(tag)
                if match:
                    return self._alias(match.group(1).upper())
            detected = self.detect_currency(symbol, name, slug)
            if detected:
                return detected
            if any(t in ASSET_BACKED_TAGS for t in tags):
                return self._infer_tokenized_type(name, symbol, slug)
            return None

        for tag, label in TOKENIZED_SUBTYPES.items():
            if tag in tags:
                if label == "Commodities":
                    return self._classify_commodity(name, symbol, slug)
                return label
        if any(t in self.tokenized_tags or t in ASSET_BACKED_TAGS for t in tags):
            return self._infer_tokenized_type(name, symbol, slug)
        return None

    def detect_currency(self, symbol: str, name: str, slug: str = "") -> Optional[str]:
        """Infer the pegged currency from symbol, then name/slug wording."""
        symbol = symbol.lower()
        upper = symbol.upper()
        if upper in self.aliases:
            return self.aliases[upper]

        match = SYMBOL_CODE.match(symbol)
        if match:
            code = (match.group(1) or match.group(2)).upper()
            if code in ISO_CURRENCY_CODES:
                return self._alias(code)
        for code in SYMBOL_PREFIX_CODES:
            if upper.startswith(code):
                return self._alias(code)

        text = f"{name.lower()} {slug.lower()}"
        for code, pattern in CURRENCY_NAME_PATTERNS:
            if pattern.search(text):
                return self._alias(code)
        for word in WORD_CODE.findall(text):
            if word.upper() in ISO_CURRENCY_CODES:
                return self._alias(word.upper())
        return None

    def _alias(self, code: str) -> str:
        return self.aliases.get(code, code)

    @staticmethod
    def _classify_commodity(name: str, symbol: str, slug: str) -> str:
        if GOLD_SYMBOLS.search(symbol) or "gold" in name or "gold" in slug:
            return "Gold"
        if SILVER_SYMBOLS.search(symbol) or "silver" in name or "silver" in slug:
            return "Silver"
        return "Commodities"

    @staticmethod
    def _infer_tokenized_type(name: str, symbol: str, slug: str) -> str:
        if GOLD_SYMBOLS.search(symbol):
            return "Gold"
        if SILVER_SYMBOLS.search(symbol):
            return "Silver"
        for label, pattern in TOKENIZED_NAME_PATTERNS:
            if pattern.search(name) or pattern.search(slug):
                return label
        return TOKENIZED_ASSET


default_classifier = AssetClassifier()
