"""
Barcode to ingredient tests: fetch_product, analyze_ingredients, create_ingredient.
"""

import logging
from datetime import timedelta

from spoils.v1.core.exceptions import ProviderError
from spoils.v1.infra.jobs.models import JobStatus
from spoils.v1.infra.jobs.payloads import (
    ANALYZE_INGREDIENTS,
    CREATE_INGREDIENT,
    FETCH_PRODUCT,
)
from spoils.v1.products.service import ProductService
from spoils.v1.providers.products import ProductRecord

from fakes import all_jobs

BARCODE = "3017620422003"


def hazelnut_spread(**overrides) -> ProductRecord:
    data = {
        "barcode": BARCODE,
        "product_name": "Hazelnut Spread",
        "brands": "Acme",
        "ingredients_text": "Sugar, Palm Oil, Hazelnuts (13%), Skimmed Milk Powder.",
        "full_response": {"code": BARCODE},
    }
    data.update(overrides)
    return ProductRecord(**data)


async def test_fetch_analyze_and_create_chain(product_provider, queue, worker, database, db_session):
    product_provider.products[BARCODE] = hazelnut_spread()

    await queue.enqueue(FETCH_PRODUCT, {"barcode": BARCODE})
    await worker.run_until_idle()

    [fetch_job] = await all_jobs(database, FETCH_PRODUCT)
    [analyze_job] = await all_jobs(database, ANALYZE_INGREDIENTS)
    create_jobs = await all_jobs(database, CREATE_INGREDIENT)

    assert fetch_job.status == JobStatus.COMPLETED.value
    assert fetch_job.result["status"] == "fetched"
    assert fetch_job.result["analysis_job_id"] == str(analyze_job.id)

    assert analyze_job.status == JobStatus.COMPLETED.value
    assert analyze_job.result["ingredients"] == [
        "Sugar",
        "Palm Oil",
        "Hazelnuts",
        "Skimmed Milk Powder",
    ]
    assert analyze_job.result["enqueued"] == 4

    assert sorted(job.payload["name"] for job in create_jobs) == [
        "Hazelnuts",
        "Palm Oil",
        "Skimmed Milk Powder",
        "Sugar",
    ]
    assert {job.status for job in create_jobs} == {JobStatus.COMPLETED.value}

    product = await ProductService().get_by_barcode(db_session, BARCODE)
    assert product.product_name == "Hazelnut Spread"
    assert product.id == fetch_job.result["product_id"]


async def test_refetch_updates_stored_product(product_provider, queue, worker, db_session):
    product_provider.products[BARCODE] = hazelnut_spread()
    await queue.enqueue(FETCH_PRODUCT, {"barcode": BARCODE})
    await worker.run_until_idle()

    product_provider.products[BARCODE] = hazelnut_spread(product_name="Hazelnut Spread 750g")
    await queue.enqueue(FETCH_PRODUCT, {"barcode": BARCODE})
    await worker.run_until_idle()

    product = await ProductService().get_by_barcode(db_session, BARCODE)
    assert product.product_name == "Hazelnut Spread 750g"


async def test_unknown_barcode_completes_without_analysis(product_provider, queue, worker, database):
    await queue.enqueue(FETCH_PRODUCT, {"barcode": "000"})
    await worker.run_until_idle()

    [job] = await all_jobs(database, FETCH_PRODUCT)
    assert job.status == JobStatus.COMPLETED.value
    assert job.result == {"status": "not_found", "barcode": "000"}
    assert await all_jobs(database, ANALYZE_INGREDIENTS) == []


async def test_provider_outage_is_retried_with_backoff(product_provider, queue, worker, database):
    product_provider.error = ProviderError("OpenFoodFacts returned 503")

    await queue.enqueue(FETCH_PRODUCT, {"barcode": BARCODE})
    assert await worker.run_once() == 1
    # Backoff keeps the job out of the next batch
    assert await worker.run_once() == 0

    [job] = await all_jobs(database, FETCH_PRODUCT)
    assert job.status == JobStatus.RETRYING.value
    assert job.attempts == 1
    assert "OpenFoodFacts returned 503" in job.last_error
    assert job.not_before - job.updated_at == timedelta(seconds=60)


async def test_product_without_statement_is_skipped(product_provider, queue, worker, database):
    product_provider.products[BARCODE] = hazelnut_spread(ingredients_text=None)

    await queue.enqueue(FETCH_PRODUCT, {"barcode": BARCODE})
    await worker.run_until_idle()

    [analyze_job] = await all_jobs(database, ANALYZE_INGREDIENTS)
    assert analyze_job.result == {"status": "skipped", "reason": "no_ingredients_text"}
    assert await all_jobs(database, CREATE_INGREDIENT) == []


async def test_analysis_of_missing_product_fails(queue, worker, database):
    await queue.enqueue(ANALYZE_INGREDIENTS, {"product_id": 999})
    await worker.run_once()

    [job] = await all_jobs(database, ANALYZE_INGREDIENTS)
    assert job.status == JobStatus.RETRYING.value
    assert "Product not found" in job.last_error


async def test_fetch_chain_completes_with_info_logging(product_provider, queue, worker, database, caplog):
    caplog.set_level(logging.INFO, logger="spoils.v1.products.service")
    product_provider.products[BARCODE] = hazelnut_spread()

    await queue.enqueue(FETCH_PRODUCT, {"barcode": BARCODE})
    await worker.run_until_idle()

    [fetch_job] = await all_jobs(database, FETCH_PRODUCT)
    [analyze_job] = await all_jobs(database, ANALYZE_INGREDIENTS)
    assert fetch_job.status == JobStatus.COMPLETED.value
    assert analyze_job.status == JobStatus.COMPLETED.value

    [stored] = [r for r in caplog.records if r.getMessage() == "Product stored"]
    assert stored.barcode == BARCODE
    assert stored.was_created is True
