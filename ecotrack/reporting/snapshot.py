"""
Report Snapshot

Current store-level sustainability figures, read from the local mirror.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.database.models import Product, Store
from ecotrack.reporting.scoring import score_rating, sustainability_score


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


@dataclass
class MetricsSnapshot:
    total_products: int
    local_products: int
    sustainable_materials_percent: float
    local_products_percent: float
    avg_packaging_ratio: float
    avg_delivery_distance_km: float

    @property
    def score(self) -> int:
        return sustainability_score(
            self.sustainable_materials_percent,
            self.local_products_percent,
            self.avg_packaging_ratio,
            self.avg_delivery_distance_km,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_products": self.total_products,
            "local_products": self.local_products,
            "sustainable_materials_percent": round(self.sustainable_materials_percent, 2),
            "local_products_percent": round(self.local_products_percent, 2),
            "avg_packaging_ratio": round(self.avg_packaging_ratio, 4),
            "avg_delivery_distance_km": round(self.avg_delivery_distance_km, 2),
        }


async def build_snapshot(session: AsyncSession, store: Store) -> MetricsSnapshot:
    """
    Averages skip products without a value; a store with no values for a
    figure reports 0 for it.
    """
    result = await session.execute(select(Product).where(Product.store_id == store.id))
    products = result.scalars().all()

    materials = _mean([p.sustainable_materials for p in products if p.sustainable_materials is not None])
    ratios = _mean([p.packaging_ratio for p in products if p.packaging_ratio is not None])
    local = sum(1 for p in products if p.is_locally_produced is True)

    return MetricsSnapshot(
        total_products=len(products),
        local_products=local,
        sustainable_materials_percent=(materials or 0.0) * 100,
        local_products_percent=(local / len(products) * 100) if products else 0.0,
        avg_packaging_ratio=ratios or 0.0,
        avg_delivery_distance_km=store.avg_delivery_distance or 0.0,
    )


async def build_report(session: AsyncSession, store: Store) -> Dict[str, Any]:
    snapshot = await build_snapshot(session, store)
    score = snapshot.score
    return {
        "store": {
            "id": str(store.id),
            "name": store.display_name,
            "domain": store.shopify_domain,
        },
        "metrics": snapshot.to_dict(),
        "sustainability_score": score,
        "rating": score_rating(score),
        "generated_at": datetime.utcnow().isoformat(),
    }
