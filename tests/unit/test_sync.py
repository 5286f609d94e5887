"""
Unit Tests - Product Writes and Catalog Reconciliation
"""
import httpx
import pytest
from sqlalchemy import func, select

from ecotrack.database.models import Product, ProductMetricsHistory
from ecotrack.metrics.sink import product_labels, store_labels
from ecotrack.shopify.client import ShopifyClient
from ecotrack.sync.reconciliation import ReconciliationEngine, SyncStatus, classify_sync
from ecotrack.transformation.metafields import SustainabilityFields

from conftest import full_metafields, metafield


class TestClassifySync:
    """Tests for classify_sync"""

    def test_synced(self):
        result = classify_sync(["1", "2"], ["2", "1"], exhaustive=True)
        assert result.status == SyncStatus.SYNCED

    def test_missing_products_need_sync(self):
        result = classify_sync(["1"], ["1", "2", "3"], exhaustive=True)
        assert result.status == SyncStatus.NEEDS_SYNC
        assert result.missing_locally == ("2", "3")

    def test_missing_wins_over_orphans(self):
        result = classify_sync(["1", "9"], ["1", "2"], exhaustive=True)
        assert result.status == SyncStatus.NEEDS_SYNC
        assert result.orphaned == ("9",)

    def test_orphans_need_cleanup(self):
        result = classify_sync(["1", "9"], ["1"], exhaustive=True)
        assert result.status == SyncStatus.NEEDS_CLEANUP

    def test_partial_fetch_never_reports_orphans(self):
        result = classify_sync(["1", "9"], ["1"], exhaustive=False)
        assert result.status == SyncStatus.MIGHT_NEED_SYNC
        assert result.orphaned == ()

    def test_duplicate_external_ids(self):
        result = classify_sync([], ["5", "5"], exhaustive=True)
        assert result.missing_locally == ("5",)


class TestProductService:
    """Tests for ProductService"""

    async def test_upsert_creates_then_merges(self, db_session, store, services):
        products = services.products

        first = await products.upsert(
            db_session, store, 7, "Linen Shirt", SustainabilityFields(packaging_weight=0.4, product_weight=2.0)
        )
        second = await products.upsert(
            db_session, store, "7", None, SustainabilityFields(sustainable_materials=0.7)
        )

        assert first.created and not second.created
        product = second.product
        assert product.title == "Linen Shirt"
        assert product.packaging_weight == 0.4
        assert product.sustainable_materials == 0.7
        assert product.packaging_ratio == pytest.approx(0.2)
        assert first.metrics.ok and second.metrics.ok

        count = (await db_session.execute(select(func.count(Product.id)))).scalar()
        assert count == 1

    async def test_create_from_shopify_writes_missing_defaults(self, db_session, store, services, fake_client):
        result = await services.products.create_from_shopify(
            db_session, store, "8", "Cork Mat",
            [metafield("packaging_weight", "0.2")],
            client=fake_client,
        )

        product = result.product
        assert result.created
        assert product.packaging_weight == 0.2
        assert product.product_weight == 0.0
        assert product.sustainable_materials == 0.0
        assert product.is_locally_produced is False
        assert product.packaging_ratio is None

        product_id, inputs = fake_client.metafield_writes[0]
        assert product_id == "8"
        assert sorted(i["key"] for i in inputs) == ["locally_produced", "product_weight", "sustainable_materials"]

    async def test_create_from_shopify_skips_existing(self, db_session, store, services, fake_client):
        await services.products.create_from_shopify(db_session, store, "9", "Tote", full_metafields())
        again = await services.products.create_from_shopify(
            db_session, store, "9", "Tote v2", full_metafields(materials="0.1")
        )

        assert again.skipped
        assert again.product.title == "Tote"
        assert again.product.sustainable_materials == 0.5

    async def test_delete_retires_product(self, db_session, store, services, sink):
        await services.products.upsert(db_session, store, "10", "Soap", SustainabilityFields(sustainable_materials=0.9))

        assert await services.products.delete(db_session, store, "10") is True
        assert await services.products.delete(db_session, store, "10") is False

        assert await services.products.get(db_session, store.id, "10") is None
        history = (await db_session.execute(select(func.count(ProductMetricsHistory.id)))).scalar()
        assert history == 0

        labels = product_labels("10", "Soap", store.id)
        assert sink.get_value("product_status", labels) == 0
        assert sink.get_value("sustainable_materials_percentage", labels) is None
        assert sink.get_value("store_product_count", store_labels(store.id, store.name, store.shopify_domain)) == 0

    async def test_apply_edit_pushes_then_mirrors(self, db_session, store, services, fake_client):
        fake_client.add_product("11", "Glass Bottle")

        edit = await services.products.apply_edit(
            db_session, store, fake_client, "11", SustainabilityFields(is_locally_produced=True)
        )

        assert edit.success
        assert edit.write.product.title == "Glass Bottle"
        assert edit.write.product.is_locally_produced is True
        assert fake_client.metafield_writes == [("11", [{
            "namespace": "custom",
            "key": "locally_produced",
            "type": "boolean",
            "value": "true",
        }])]

    async def test_apply_edit_user_errors_skip_local_write(self, db_session, store, services, fake_client):
        fake_client.user_errors = ["Value must be a decimal"]

        edit = await services.products.apply_edit(
            db_session, store, fake_client, "12", SustainabilityFields(sustainable_materials=0.5)
        )

        assert not edit.success
        assert edit.write is None
        assert edit.mutation.error_message == "Value must be a decimal"
        assert await services.products.get(db_session, store.id, "12") is None


class TestReconciliationEngine:
    """Tests for ReconciliationEngine"""

    async def test_reconcile_creates_and_prunes(self, db_session, store, services, fake_client):
        fake_client.add_product("1", "Kept", full_metafields())
        fake_client.add_product("2", "New", [metafield("product_weight", "1.0")])
        await services.products.upsert(db_session, store, "1", "Kept", SustainabilityFields(sustainable_materials=0.5))
        await services.products.upsert(db_session, store, "99", "Gone", SustainabilityFields())

        report = await services.reconciliation.reconcile_store(db_session, store, fake_client)

        assert report.created == 1
        assert report.deleted == 1
        assert report.defaults_written == 1
        assert report.status == SyncStatus.SYNCED
        assert sorted(await services.products.local_ids(db_session, store.id)) == ["1", "2"]

        created = await services.products.get(db_session, store.id, "2")
        assert created.product_weight == 1.0
        assert created.sustainable_materials == 0.0

    async def test_partial_fetch_keeps_local_products(self, db_session, store, services, fake_client):
        fake_client.exhaustive = False
        fake_client.add_product("1", "Listed")
        await services.products.upsert(db_session, store, "1", "Listed", SustainabilityFields())
        await services.products.upsert(db_session, store, "50", "Unlisted", SustainabilityFields())

        report = await services.reconciliation.reconcile_store(db_session, store, fake_client)

        assert report.deleted == 0
        assert report.status == SyncStatus.MIGHT_NEED_SYNC
        assert report.local_product_count == 2

    async def test_pruning_can_be_disabled(self, db_session, store, services, fake_client):
        engine = ReconciliationEngine(services.products, services.aggregator, prune_orphans=False)
        await services.products.upsert(db_session, store, "77", "Orphan", SustainabilityFields())

        report = await engine.reconcile_store(db_session, store, fake_client)

        assert report.deleted == 0
        assert report.status == SyncStatus.NEEDS_CLEANUP

    async def test_fetch_failure_reports_error(self, db_session, store, services, fake_client):
        fake_client.fail_catalog = True

        report = await services.reconciliation.reconcile_store(db_session, store, fake_client)

        assert report.status == SyncStatus.ERROR
        assert report.created == 0
        assert "503" in report.error

    async def test_non_json_catalog_reports_error(self, db_session, store, services):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        async with ShopifyClient(store.shopify_domain, "shpat_test", transport=transport) as client:
            status = await services.reconciliation.check_status(db_session, store, client)
            report = await services.reconciliation.reconcile_store(db_session, store, client)

        assert status.status == SyncStatus.ERROR
        assert report.status == SyncStatus.ERROR
        assert (report.created, report.deleted) == (0, 0)
        assert "non-JSON" in report.error

    async def test_check_status_is_read_only(self, db_session, store, services, fake_client):
        fake_client.add_product("3", "Remote only")

        report = await services.reconciliation.check_status(db_session, store, fake_client)

        assert report.status == SyncStatus.NEEDS_SYNC
        assert report.missing_locally == ["3"]
        assert await services.products.local_ids(db_session, store.id) == []

    async def test_import_catalog_updates_existing(self, db_session, store, services, fake_client):
        fake_client.add_product("4", "Existing", full_metafields(materials="0.9"))
        fake_client.add_product("5", "Fresh", full_metafields())
        await services.products.upsert(db_session, store, "4", "Existing", SustainabilityFields(sustainable_materials=0.1))

        report = await services.reconciliation.import_catalog(db_session, store, fake_client)

        assert (report.created, report.updated) == (1, 1)
        existing = await services.products.get(db_session, store.id, "4")
        assert existing.sustainable_materials == 0.9

    async def test_republish_store(self, db_session, store, services, sink):
        await services.products.upsert(db_session, store, "6", "Lamp", SustainabilityFields(sustainable_materials=0.3))
        labels = product_labels("6", "Lamp", store.id)
        sink.remove_gauge("sustainable_materials_percentage", labels)

        assert await services.reconciliation.republish_store(db_session, store.id) == 1
        assert sink.get_value("sustainable_materials_percentage", labels) == pytest.approx(0.3)
