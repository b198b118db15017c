"""Operator-supplied import rules, frozen once per migration run."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from core.config import DEFAULT_CATEGORY_MAP, DEFAULT_SIZE_CLASS_MAP, Settings


@dataclass(frozen=True)
class MigrationRules:
    skip_skus: frozenset[str] = frozenset({"305152J"})
    skip_item_names: frozenset[str] = frozenset({"Custom Amount"})
    category_map: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CATEGORY_MAP))
    loyalty_excluded_sku: str = "0000001"
    size_class_map: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SIZE_CLASS_MAP))
    migration_batch_size: int = 100
    transaction_batch_size: int = 50
    top_spender_count: int = 10
    spend_tolerance: Decimal = Decimal("1.00")
    inventory_tolerance: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "MigrationRules":
        return cls(
            skip_skus=frozenset(s.strip() for s in settings.skip_skus),
            skip_item_names=frozenset(n.strip() for n in settings.skip_item_names),
            category_map=dict(settings.category_map),
            loyalty_excluded_sku=settings.loyalty_excluded_sku.strip(),
            # Size tokens are matched case-insensitively; store them upper-cased.
            size_class_map={k.strip().upper(): v for k, v in settings.size_class_map.items()},
            migration_batch_size=settings.migration_batch_size,
            transaction_batch_size=settings.transaction_batch_size,
            top_spender_count=settings.top_spender_count,
            spend_tolerance=settings.spend_tolerance,
            inventory_tolerance=settings.inventory_tolerance,
        )
