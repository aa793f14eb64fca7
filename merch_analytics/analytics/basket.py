"""
Basket Association Mining

Association rules between SKUs bought in the same order. For a directed
pair A -> B over all baskets:
- support    = baskets with A and B / all baskets
- confidence = baskets with A and B / baskets with A
- lift       = confidence / support(B)
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from itertools import permutations
from typing import Dict, FrozenSet, Iterable, List, Optional

import structlog

from merch_analytics.transformation.normalizers import TransactionRecord
from .correlation import Association, AssociationKind

logger = structlog.get_logger(__name__)


@dataclass
class BasketStatistics:
    """Item and pair counts over a basket set"""
    total_baskets: int
    item_counts: Counter = field(default_factory=Counter)
    pair_counts: Counter = field(default_factory=Counter)

    def support(self, sku: str) -> float:
        if not self.total_baskets:
            return 0.0
        return self.item_counts[sku] / self.total_baskets

    def rule(self, source: str, target: str) -> Association:
        """Support/confidence/lift for source -> target"""
        both = self.pair_counts[frozenset((source, target))]
        support = both / self.total_baskets if self.total_baskets else 0.0
        source_count = self.item_counts[source]
        confidence = both / source_count if source_count else 0.0
        target_support = self.support(target)
        lift = confidence / target_support if confidence > 0 and target_support > 0 else 0.0
        return Association(
            source=source,
            target=target,
            strength=confidence,
            kind=AssociationKind.BASKET,
            support=support,
            confidence=confidence,
            lift=lift,
        )


def has_baskets(records: Iterable[TransactionRecord]) -> bool:
    """True when any record carries an order id"""
    return any(record.order_id for record in records)


def build_baskets(records: Iterable[TransactionRecord]) -> Dict[str, FrozenSet[str]]:
    """Distinct SKUs per order id; records without order or product are ignored"""
    baskets = defaultdict(set)
    for record in records:
        if record.order_id and record.product:
            baskets[record.order_id].add(record.product)
    return {order_id: frozenset(items) for order_id, items in baskets.items()}


class BasketAssociationMiner:
    """
    Mines pairwise association rules from order baskets.

    Example:
        miner = BasketAssociationMiner(min_support=0.02, min_confidence=0.25)
        associations = miner.mine(records)
        associations["SKU-1"][0].lift
    """

    def __init__(
        self,
        min_support: float = 0.02,
        min_confidence: float = 0.25,
        min_lift: float = 1.2,
        top_k: int = 5,
    ):
        self.min_support = min_support
        self.min_confidence = min_confidence
        self.min_lift = min_lift
        self.top_k = top_k

    def statistics(self, records: Iterable[TransactionRecord]) -> BasketStatistics:
        """Count item and co-occurrence frequencies"""
        baskets = build_baskets(records)
        stats = BasketStatistics(total_baskets=len(baskets))
        for items in baskets.values():
            stats.item_counts.update(items)
            ordered = sorted(items)
            for i, first in enumerate(ordered):
                for second in ordered[i + 1:]:
                    stats.pair_counts[frozenset((first, second))] += 1
        return stats

    def passes(self, rule: Association) -> bool:
        return (
            rule.support >= self.min_support
            and rule.confidence >= self.min_confidence
            and rule.lift >= self.min_lift
        )

    def mine(
        self,
        records: List[TransactionRecord],
        skus: Optional[Iterable[str]] = None,
    ) -> Dict[str, List[Association]]:
        """
        Directed association rules per source SKU.

        Args:
            records: Normalized transactions with order ids
            skus: Restrict sources and targets to these SKUs (all basket
                items if omitted)

        Returns:
            Mapping of source SKU to rules sorted by confidence, top-K each
        """
        return self.rules(self.statistics(records), skus)

    def rules(
        self,
        stats: BasketStatistics,
        skus: Optional[Iterable[str]] = None,
    ) -> Dict[str, List[Association]]:
        """Same as ``mine`` but over already counted basket statistics"""
        universe = list(stats.item_counts) if skus is None else list(skus)

        associations = {sku: [] for sku in universe}
        for source, target in permutations(universe, 2):
            if not stats.item_counts[source] or not stats.item_counts[target]:
                continue
            rule = stats.rule(source, target)
            if self.passes(rule):
                associations[source].append(rule)

        for source, kept in associations.items():
            kept.sort(key=lambda r: r.confidence, reverse=True)
            associations[source] = kept[:self.top_k]

        logger.info(
            "Basket associations mined",
            baskets=stats.total_baskets,
            skus=len(universe),
            rules=sum(len(v) for v in associations.values()),
        )
        return associations
