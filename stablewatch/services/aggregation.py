"""Cross-source merge of standardized records into aggregated assets.

Everything in this module is a pure function of its inputs: source record
lists, an effective priority map and the cycle timestamp ``now``. Given the
same inputs, :func:`aggregate` returns identical output no matter in which
order the sources finished fetching.

Field selection rule: for each field, contributing records are ordered by
descending effective priority, ties broken by ascending source id, and the
first record with a non-null value wins.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from stablewatch.core.config import Settings
from stablewatch.core.logging import get_logger
from stablewatch.ingestion.defillama_source import EXTENSION_KEY, pegged_amount
from stablewatch.schemas.aggregated import (
    STABLECOIN,
    TOKENIZED_ASSET,
    AggregatedAsset,
    AggregatedMarketData,
    AggregatedMetadata,
    AggregatedSupplyData,
    ChainHistory,
    Confidence,
    ConflictRecord,
    ConflictSummary,
    MarketMetrics,
    NetworkBreakdownEntry,
    PlatformRollup,
    Quality,
)
from stablewatch.schemas.standardized import StandardizedAssetRecord
from stablewatch.services.formatting import format_number, slugify
from stablewatch.services.platforms import UNKNOWN_PLATFORM, normalize_platform_name, platforms_from_tags

log = get_logger("services.aggregation")

CONSENSUS_TOLERANCE = 0.05
NEUTRAL_CONSENSUS = 0.5
RECENT_DATA_WINDOW = timedelta(hours=1)
CONFLICT_FIELDS: Tuple[str, ...] = ("pegged_asset",)
CATEGORY_ORDER = {STABLECOIN: 0, TOKENIZED_ASSET: 1}

SourceRecords = Mapping[str, Sequence[StandardizedAssetRecord]]


@dataclass(frozen=True)
class ConfidenceWeights:
    market_price: float = 0.5
    market_cap: float = 0.3
    market_consensus: float = 0.2
    supply_single: float = 0.8
    supply_multi: float = 0.2
    platform_baseline: float = 0.5
    datapoint_saturation: int = 6

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConfidenceWeights":
        return cls(
            market_price=settings.CONFIDENCE_MARKET_PRICE_WEIGHT,
            market_cap=settings.CONFIDENCE_MARKET_MCAP_WEIGHT,
            market_consensus=settings.CONFIDENCE_MARKET_CONSENSUS_WEIGHT,
            supply_single=settings.CONFIDENCE_SUPPLY_SINGLE_WEIGHT,
            supply_multi=settings.CONFIDENCE_SUPPLY_MULTI_WEIGHT,
            platform_baseline=settings.CONFIDENCE_PLATFORM_BASELINE,
            datapoint_saturation=settings.CONFIDENCE_DATAPOINT_SATURATION,
        )


DEFAULT_WEIGHTS = ConfidenceWeights()


@dataclass(frozen=True)
class Pick:
    value: Any
    source_id: Optional[str]


@dataclass
class ConflictTracker:
    """Running conflict tallies for one aggregation cycle."""

    total: int = 0
    by_field: Dict[str, int] = field(default_factory=dict)
    by_asset: Dict[str, int] = field(default_factory=dict)
    last_conflict_time: Optional[datetime] = None

    def add(self, asset_key: str, record: ConflictRecord) -> None:
        self.total += 1
        self.by_field[record.field] = self.by_field.get(record.field, 0) + 1
        self.by_asset[asset_key] = self.by_asset.get(asset_key, 0) + 1
        self.last_conflict_time = record.timestamp

    def summary(self) -> ConflictSummary:
        return ConflictSummary(
            total_conflicts=self.total,
            conflicts_by_field=dict(self.by_field),
            conflicts_by_asset=dict(self.by_asset),
            last_conflict_time=self.last_conflict_time,
        )


@dataclass
class AggregationResult:
    assets: List[AggregatedAsset]
    conflicts: ConflictTracker
    skipped: List[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Grouping and priority
# -----------------------------------------------------------------------------
def effective_priorities(declared: Mapping[str, int], overrides: Optional[Mapping[str, int]] = None) -> Dict[str, int]:
    """Declared capability priority, replaced by a configured override when present."""
    priorities = dict(declared)
    for source_id, value in (overrides or {}).items():
        priorities[source_id] = int(value)
    return priorities


def ordered_entries(
    entries: Iterable[StandardizedAssetRecord], priorities: Mapping[str, int]
) -> List[StandardizedAssetRecord]:
    return sorted(entries, key=lambda r: (-priorities.get(r.source_id, 0), r.source_id))


def group_by_symbol(
    source_records: SourceRecords, priorities: Mapping[str, int]
) -> Dict[str, List[StandardizedAssetRecord]]:
    """Map merge key (symbol, else slug, else name, upper-cased) to its records."""
    groups: Dict[str, List[StandardizedAssetRecord]] = {}
    for source_id in sorted(source_records, key=lambda s: (-priorities.get(s, 0), s)):
        for record in source_records[source_id] or ():
            key = record.merge_key
            if not key:
                continue
            groups.setdefault(key, []).append(record)
    return groups


def pick(
    entries: Sequence[StandardizedAssetRecord],
    getter: Callable[[StandardizedAssetRecord], Any],
    priorities: Optional[Mapping[str, int]] = None,
) -> Pick:
    """First non-null value in priority order.

    Without ``priorities`` the entries are taken to be ordered already.
    """
    if priorities is not None:
        entries = ordered_entries(entries, priorities)
    for record in entries:
        value = getter(record)
        if value is not None and value != "":
            return Pick(value, record.source_id)
    return Pick(None, None)


# -----------------------------------------------------------------------------
# Scores
# -----------------------------------------------------------------------------
def compute_consensus(values: Sequence[float]) -> float:
    """1.0 when all values agree, 0.0 once any value is 5% or more from the median."""
    numbers = [v for v in values if v is not None]
    if len(numbers) <= 1:
        return NEUTRAL_CONSENSUS
    ordered = sorted(numbers)
    mid = len(ordered) // 2
    center = ordered[mid] if len(ordered) % 2 else (ordered[mid - 1] + ordered[mid]) / 2
    if center == 0:
        return NEUTRAL_CONSENSUS
    max_deviation = max(abs(v - center) / abs(center) for v in ordered)
    return max(0.0, min(1.0, 1 - max_deviation / CONSENSUS_TOLERANCE))


def compute_confidence(
    price_sources: int,
    mcap_sources: int,
    supply_sources: int,
    consensus: float,
    source_count: int,
    weights: ConfidenceWeights = DEFAULT_WEIGHTS,
) -> Confidence:
    datapoints = price_sources + mcap_sources + supply_sources
    coverage = min(1.0, datapoints / weights.datapoint_saturation)
    market = (
        weights.market_price * (price_sources > 0)
        + weights.market_cap * (mcap_sources > 0)
        + weights.market_consensus * consensus
    )
    supply = weights.supply_single * (supply_sources >= 1) + weights.supply_multi * (supply_sources >= 2)
    platform = weights.platform_baseline
    overall = (0.4 * market + 0.4 * supply + 0.2 * platform) * (0.8 + 0.2 * coverage)
    return Confidence(
        overall=_clamp(overall),
        market_data=_clamp(market),
        supply_data=_clamp(supply),
        platform_data=_clamp(platform),
        source_count=source_count,
        consensus=_clamp(consensus),
    )


def compute_quality(
    market: AggregatedMarketData,
    circulating: Optional[float],
    source_count: int,
    consensus: float,
    newest: Optional[datetime],
    now: datetime,
) -> Quality:
    missing = []
    if market.price is None:
        missing.append("price")
    if market.market_cap is None:
        missing.append("market_cap")
    if circulating is None:
        missing.append("circulating")

    warnings = []
    if source_count == 1:
        warnings.append("Single data source")
    if len(market.source_prices) > 1 and consensus < NEUTRAL_CONSENSUS:
        warnings.append("Sources disagree on price")
    recent = newest is not None and now - newest <= RECENT_DATA_WINDOW
    if not recent:
        warnings.append("Source data older than one hour")

    return Quality(
        has_recent_data=recent,
        has_multiple_sources=source_count > 1,
        has_market_data=market.price is not None and market.market_cap is not None,
        has_supply_data=circulating is not None,
        warnings=warnings,
        missing_fields=missing,
    )


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# -----------------------------------------------------------------------------
# Network breakdown
# -----------------------------------------------------------------------------
def chain_data_of(entries: Sequence[StandardizedAssetRecord]) -> Optional[Dict[str, Any]]:
    """The authoritative per-chain circulation block, when any entry carries one."""
    for record in entries:
        block = record.metadata.extra.get(EXTENSION_KEY)
        if isinstance(block, dict) and block.get("raw_chain_circulating"):
            return block
    return None


def chain_breakdown(block: Mapping[str, Any]) -> List[NetworkBreakdownEntry]:
    chains = block.get("raw_chain_circulating") or {}
    peg_type = block.get("peg_type")
    rows: List[Tuple[str, float, Dict[str, Any]]] = []
    for chain, data in chains.items():
        if not isinstance(data, dict):
            continue
        supply = pegged_amount(data.get("current"), peg_type)
        if supply is None or supply <= 0:
            continue
        rows.append((chain, supply, data))

    total = sum(supply for _, supply, _ in rows)
    breakdown = [
        NetworkBreakdownEntry(
            platform=normalize_platform_name(chain),
            network=chain.lower(),
            supply=supply,
            percentage=supply / total * 100 if total else None,
            historical=ChainHistory(
                prev_day=pegged_amount(data.get("circulatingPrevDay"), peg_type),
                prev_week=pegged_amount(data.get("circulatingPrevWeek"), peg_type),
                prev_month=pegged_amount(data.get("circulatingPrevMonth"), peg_type),
            ),
        )
        for chain, supply, data in rows
    ]
    breakdown.sort(key=lambda e: (-(e.supply or 0.0), e.network or ""))
    return breakdown


def merge_network_breakdown(entries: Sequence[StandardizedAssetRecord]) -> List[NetworkBreakdownEntry]:
    """Authoritative chain data when present, else a de-duplicated union."""
    block = chain_data_of(entries)
    if block is not None:
        return chain_breakdown(block)

    seen = set()
    merged: List[NetworkBreakdownEntry] = []
    for record in entries:
        for item in [*record.supply_data.network_breakdown, *record.platforms]:
            network = item.network or item.name
            key = ((network or "").lower(), (item.contract_address or "").lower())
            if key in seen:
                continue
            seen.add(key)
            merged.append(
                NetworkBreakdownEntry(
                    platform=item.name or item.network or UNKNOWN_PLATFORM,
                    network=network,
                    supply=item.supply,
                    percentage=item.percentage,
                    contract_address=item.contract_address,
                )
            )
    return merged


# -----------------------------------------------------------------------------
# Conflicts
# -----------------------------------------------------------------------------
def detect_conflicts(
    entries: Sequence[StandardizedAssetRecord],
    now: datetime,
    fields: Sequence[str] = CONFLICT_FIELDS,
) -> Dict[str, ConflictRecord]:
    conflicts: Dict[str, ConflictRecord] = {}
    for name in fields:
        values_by_source: Dict[str, Any] = {}
        for record in entries:
            value = getattr(record.metadata, name, None)
            if value is None or str(value).strip() == "":
                continue
            values_by_source.setdefault(record.source_id, value)
        normalized = sorted({str(v).strip().lower() for v in values_by_source.values()})
        if len(normalized) >= 2:
            conflicts[name] = ConflictRecord(
                field=name,
                values_by_source=values_by_source,
                normalized=normalized,
                conflict_count=len(normalized),
                timestamp=now,
            )
    return conflicts


# -----------------------------------------------------------------------------
# Merge
# -----------------------------------------------------------------------------
def merge_symbol(
    key: str,
    records: Sequence[StandardizedAssetRecord],
    priorities: Mapping[str, int],
    now: datetime,
    weights: ConfidenceWeights = DEFAULT_WEIGHTS,
    tracker: Optional[ConflictTracker] = None,
) -> AggregatedAsset:
    entries = ordered_entries(records, priorities)
    if not entries:
        raise ValueError(f"No records to merge for {key}")

    name = pick(entries, lambda r: r.name)
    symbol = pick(entries, lambda r: r.symbol)
    slug = pick(entries, lambda r: r.slug)
    price = pick(entries, lambda r: r.market_data.price)
    market_cap = pick(entries, lambda r: r.market_data.market_cap)
    volume = pick(entries, lambda r: r.market_data.volume_24h)
    circulating = pick(entries, lambda r: r.supply_data.circulating)
    total = pick(entries, lambda r: r.supply_data.total)
    max_supply = pick(entries, lambda r: r.supply_data.max)
    logo = pick(entries, lambda r: r.metadata.logo_url)
    category = pick(entries, lambda r: r.metadata.asset_category)

    source_prices: Dict[str, float] = {}
    for record in entries:
        if record.market_data.price is not None:
            source_prices.setdefault(record.source_id, record.market_data.price)

    market = AggregatedMarketData(
        price=price.value,
        price_source=price.source_id,
        market_cap=market_cap.value,
        market_cap_source=market_cap.source_id,
        volume_24h=volume.value,
        volume_source=volume.source_id,
        percent_change_24h=pick(entries, lambda r: r.market_data.percent_change_24h).value,
        rank=pick(entries, lambda r: r.market_data.rank).value,
        source_prices=source_prices,
    )

    tags: Dict[str, None] = {}
    for record in entries:
        for tag in record.metadata.tags:
            tags.setdefault(tag, None)

    conflicts: Dict[str, ConflictRecord] = {}
    try:
        conflicts = detect_conflicts(entries, now)
    except Exception as exc:  # noqa: BLE001
        log.exception(f"Conflict detection failed for {key}: {exc}")
    if tracker is not None:
        for record in conflicts.values():
            tracker.add(key, record)

    chain_block = chain_data_of(entries)
    metadata = AggregatedMetadata(
        tags=list(tags),
        description=pick(entries, lambda r: r.metadata.description).value,
        website=pick(entries, lambda r: r.metadata.website).value,
        logo_url=logo.value,
        date_added=pick(entries, lambda r: r.metadata.date_added).value,
        pegged_asset=pick(entries, lambda r: r.metadata.pegged_asset).value,
        conflicts=conflicts,
        defillama=dict(chain_block) if chain_block is not None else None,
    )

    source_ids = list(dict.fromkeys(r.source_id for r in entries))
    consensus = compute_consensus(list(source_prices.values()))
    confidence = compute_confidence(
        price_sources=len(source_prices),
        mcap_sources=len({r.source_id for r in entries if r.market_data.market_cap is not None}),
        supply_sources=len({r.source_id for r in entries if r.supply_data.circulating is not None}),
        consensus=consensus,
        source_count=len(source_ids),
        weights=weights,
    )
    newest = max((r.timestamp for r in entries), default=None)
    resolved_slug = (slug.value or symbol.value or key).lower()

    return AggregatedAsset(
        id=resolved_slug,
        name=name.value or key,
        symbol=symbol.value or key,
        slug=resolved_slug,
        image_url=logo.value,
        asset_category=category.value if category.value in CATEGORY_ORDER else STABLECOIN,
        market_data=market,
        supply_data=AggregatedSupplyData(
            circulating=circulating.value,
            circulating_source=circulating.source_id,
            total=total.value,
            total_source=total.source_id,
            max=max_supply.value,
            max_source=max_supply.source_id,
            network_breakdown=merge_network_breakdown(entries),
        ),
        metadata=metadata,
        confidence=confidence,
        data_sources=source_ids,
        quality=compute_quality(market, circulating.value, len(source_ids), consensus, newest, now),
        last_updated=now,
    )


def sort_assets(assets: List[AggregatedAsset]) -> List[AggregatedAsset]:
    """Stablecoins before tokenized assets, then market cap descending."""
    return sorted(
        assets,
        key=lambda a: (CATEGORY_ORDER.get(a.asset_category, len(CATEGORY_ORDER)), -(a.market_data.market_cap or 0.0)),
    )


def aggregate(
    source_records: SourceRecords,
    priorities: Mapping[str, int],
    now: datetime,
    weights: ConfidenceWeights = DEFAULT_WEIGHTS,
) -> AggregationResult:
    tracker = ConflictTracker()
    assets: List[AggregatedAsset] = []
    skipped: List[str] = []
    for key, records in group_by_symbol(source_records, priorities).items():
        try:
            assets.append(merge_symbol(key, records, priorities, now, weights, tracker))
        except Exception as exc:  # noqa: BLE001
            log.exception(f"Failed to merge {key}: {exc}")
            skipped.append(key)
    return AggregationResult(sort_assets(assets), tracker, skipped)


# -----------------------------------------------------------------------------
# Roll-ups and metrics
# -----------------------------------------------------------------------------
def asset_platforms(asset: AggregatedAsset) -> List[NetworkBreakdownEntry]:
    """Breakdown entries with display names, one per platform (first occurrence wins)."""
    seen = set()
    rows: List[NetworkBreakdownEntry] = []
    for entry in asset.supply_data.network_breakdown:
        display = normalize_platform_name(entry.network or entry.platform)
        if display in seen:
            continue
        seen.add(display)
        rows.append(entry.model_copy(update={"platform": display}))
    if not rows:
        for display in platforms_from_tags(asset.metadata.tags) or [UNKNOWN_PLATFORM]:
            rows.append(NetworkBreakdownEntry(platform=display))
    return rows


def build_platform_rollups(assets: Sequence[AggregatedAsset]) -> List[PlatformRollup]:
    """Per-platform market cap and coin count.

    A coin whose every platform row carries a supply (and which has a price)
    contributes supply x price to each chain; otherwise its whole market cap
    is attributed to every listed platform. One method is used per coin.
    """
    sums: Dict[str, float] = defaultdict(float)
    coins: Dict[str, Dict[str, float]] = defaultdict(dict)
    for asset in assets:
        price = asset.market_data.price
        mcap = asset.market_data.market_cap or 0.0
        rows = asset_platforms(asset)
        weighted = price is not None and all(entry.supply is not None for entry in rows)
        for entry in rows:
            share = entry.supply * price if weighted else mcap
            sums[entry.platform] += share
            label = asset.symbol or asset.id
            coins[entry.platform][label] = coins[entry.platform].get(label, 0.0) + share

    rollups = [
        PlatformRollup(
            name=name,
            uri=slugify(name),
            mcap_sum=total,
            mcap_sum_s=format_number(total),
            coin_count=len(coins[name]),
            top_coins=[s for s, _ in sorted(coins[name].items(), key=lambda kv: (-kv[1], kv[0]))[:5]],
        )
        for name, total in sums.items()
    ]
    rollups.sort(key=lambda p: (-p.mcap_sum, p.name))
    return rollups


def compute_metrics(
    assets: Sequence[AggregatedAsset],
    platform_count: int,
    now: datetime,
    category: Optional[str] = None,
) -> MarketMetrics:
    subset = [a for a in assets if category is None or a.asset_category == category]
    total_mcap = sum(a.market_data.market_cap or 0.0 for a in subset)
    total_volume = sum(a.market_data.volume_24h or 0.0 for a in subset)
    return MarketMetrics(
        total_market_cap=total_mcap,
        total_market_cap_formatted=format_number(total_mcap),
        total_volume=total_volume,
        total_volume_formatted=format_number(total_volume),
        count=len(subset),
        platform_count=platform_count,
        last_updated=now,
    )


def segmented_metrics(
    assets: Sequence[AggregatedAsset], platform_count: int, now: datetime
) -> Dict[str, MarketMetrics]:
    return {
        "combined": compute_metrics(assets, platform_count, now),
        "stablecoin": compute_metrics(assets, platform_count, now, STABLECOIN),
        "tokenized_asset": compute_metrics(assets, platform_count, now, TOKENIZED_ASSET),
    }
