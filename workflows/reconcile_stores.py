"""
Prefect Workflow Orchestration - Store Reconciliation

Scheduled catalog reconciliation for every installed store:
- Create products missing from the local mirror
- Prune orphans after an exhaustive catalog fetch
- Refresh store-level gauges
"""

from typing import List, Optional

from prefect import flow, task, get_run_logger
from sqlalchemy import select

from ecotrack.config import get_settings
from ecotrack.config.logging import configure_logging
from ecotrack.database.connection import close_database, get_db, get_session_factory, init_database
from ecotrack.database.models import Store
from ecotrack.serving.services import AppServices, build_services
from ecotrack.sync.stores import require_store

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="list_installed_stores",
    description="Domains of stores with a registered access token",
    retries=2,
    retry_delay_seconds=30,
)
async def list_installed_stores() -> List[str]:
    async with get_db() as db:
        result = await db.execute(
            select(Store.shopify_domain).where(Store.access_token.is_not(None)).order_by(Store.shopify_domain)
        )
        return list(result.scalars().all())


@task(
    name="reconcile_store",
    description="Reconcile one store's catalog with the local mirror",
    retries=3,
    retry_delay_seconds=60,
)
async def reconcile_store(services: AppServices, shop_domain: str) -> dict:
    logger = get_run_logger()

    async with get_db() as db:
        store = await require_store(db, shop_domain)
        client = services.client_factory(store)
        try:
            report = await services.reconciliation.reconcile_store(db, store, client)
        finally:
            await client.close()

    if report.error:
        # Raise so Prefect retries the task
        raise RuntimeError(f"Reconciliation of {shop_domain} failed: {report.error}")

    logger.info(
        f"{shop_domain}: {report.status.value}, "
        f"{report.created} created, {report.deleted} deleted"
    )
    return report.to_dict()


@task(
    name="refresh_store_gauges",
    description="Recompute aggregate gauges for all stores",
    retries=2,
    retry_delay_seconds=30,
)
async def refresh_store_gauges(services: AppServices) -> bool:
    async with get_db() as db:
        result = await services.aggregator.refresh_all_stores(db)
    return result.ok


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="reconcile_stores",
    description="Reconcile every installed store with its Shopify catalog",
    retries=1,
    retry_delay_seconds=300,
)
async def reconcile_stores(shop_domains: Optional[List[str]] = None) -> dict:
    """
    Store reconciliation pipeline.

    Steps:
    1. List installed stores (or use the given domains)
    2. Reconcile each store; one failing store does not stop the others
    3. Refresh store aggregate gauges
    """
    logger = get_run_logger()
    configure_logging()

    await init_database()
    try:
        services = build_services(get_session_factory())
        domains = shop_domains or await list_installed_stores()
        logger.info(f"Reconciling {len(domains)} stores")

        results = {"stores": {}, "failed": []}
        for domain in domains:
            try:
                results["stores"][domain] = await reconcile_store(services, domain)
            except Exception as e:
                logger.error(f"Reconciliation failed for {domain}: {e}")
                results["failed"].append(domain)

        results["gauges_refreshed"] = await refresh_store_gauges(services)
        results["status"] = "failed" if results["failed"] else "success"
        return results
    finally:
        await close_database()


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    import asyncio

    asyncio.run(reconcile_stores())
