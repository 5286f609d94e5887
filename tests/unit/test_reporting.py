"""
Unit Tests - Sustainability Score and Report
"""
import pytest

from ecotrack.reporting.scoring import score_rating, sustainability_score
from ecotrack.reporting.snapshot import build_report, build_snapshot
from ecotrack.transformation.metafields import SustainabilityFields


class TestSustainabilityScore:
    """Tests for sustainability_score"""

    def test_empty_store(self):
        # only the packaging and distance terms contribute
        assert sustainability_score(0, 0, 0, 0) == 40

    def test_perfect_store(self):
        assert sustainability_score(100, 100, 0, 0) == 100

    def test_terms_floor_at_zero(self):
        assert sustainability_score(50, 50, 2.0, 400) == 30
        assert sustainability_score(50, 50, 5.0, 1000) == 30

    def test_halves_round_up(self):
        assert sustainability_score(0, 2, 2.0, 200) == 1

    @pytest.mark.parametrize("score,rating", [
        (100, "Excellent"),
        (80, "Excellent"),
        (79, "Good"),
        (60, "Good"),
        (40, "Fair"),
        (39, "Needs Improvement"),
        (0, "Needs Improvement"),
    ])
    def test_rating(self, score, rating):
        assert score_rating(score) == rating


class TestReport:
    """Tests for the report snapshot"""

    async def test_snapshot(self, db_session, store, services):
        products = services.products
        await products.upsert(db_session, store, "1", "A", SustainabilityFields(
            sustainable_materials=0.8, is_locally_produced=True, packaging_weight=0.5, product_weight=1.0,
        ))
        await products.upsert(db_session, store, "2", "B", SustainabilityFields(
            sustainable_materials=0.4, is_locally_produced=False,
        ))
        store.avg_delivery_distance = 100.0
        await db_session.commit()

        snapshot = await build_snapshot(db_session, store)

        assert snapshot.total_products == 2
        assert snapshot.local_products == 1
        assert snapshot.sustainable_materials_percent == pytest.approx(60.0)
        assert snapshot.local_products_percent == pytest.approx(50.0)
        assert snapshot.avg_packaging_ratio == pytest.approx(0.5)
        assert snapshot.avg_delivery_distance_km == 100.0
        # 100 * (0.35*0.6 + 0.25*0.5 + 0.25*0.75 + 0.15*0.5) = 59.75
        assert snapshot.score == 60

    async def test_report_for_empty_store(self, db_session, store):
        report = await build_report(db_session, store)

        assert report["store"]["name"] == "Green Goods"
        assert report["metrics"]["total_products"] == 0
        assert report["sustainability_score"] == 40
        assert report["rating"] == "Fair"
