"""
Ingredient and product API endpoint tests.
"""

from httpx import AsyncClient

from spoils.v1.ingredients.models import Ingredient, IngredientComponent
from spoils.v1.products.models import Product

from fakes import all_jobs


class TestResolveAPI:
    async def test_resolve_unknown_name_enqueues(self, async_client: AsyncClient, database):
        response = await async_client.post("/v1/ingredients/resolve", json={"name": "cane sugar"})

        assert response.status_code == 200
        [lookup] = response.json()["data"]["ingredients"]
        assert lookup["name"] == "cane sugar"
        assert lookup["ingredient_id"] is None
        assert lookup["enqueued"] is True

        [job] = await all_jobs(database, "create_ingredient")
        assert str(job.id) == lookup["job_id"]
        assert job.request_id == response.headers["X-Request-ID"]

    async def test_resolve_statement(self, async_client: AsyncClient, db_session):
        db_session.add(Ingredient(name="Water", name_key="water", branded=False))
        await db_session.commit()

        response = await async_client.post(
            "/v1/ingredients/resolve",
            json={"text": "Water, Sugar (Cane), sugar, Salt."},
        )

        lookups = response.json()["data"]["ingredients"]
        assert [lookup["name"] for lookup in lookups] == ["Water", "Sugar", "sugar", "Salt"]
        assert lookups[0]["ingredient_id"] is not None
        assert lookups[2]["job_id"] == lookups[1]["job_id"]
        assert lookups[2]["deduplicated"] is True

    async def test_resolve_requires_exactly_one_input(self, async_client: AsyncClient):
        assert (await async_client.post("/v1/ingredients/resolve", json={})).status_code == 422
        response = await async_client.post(
            "/v1/ingredients/resolve", json={"name": "salt", "text": "salt, pepper"}
        )
        assert response.status_code == 422

    async def test_resolve_blank_name(self, async_client: AsyncClient):
        response = await async_client.post("/v1/ingredients/resolve", json={"name": "   "})

        assert response.status_code == 422
        assert response.json()["ok"] is False


class TestIngredientAPI:
    async def test_get_ingredient_with_relations(self, async_client: AsyncClient, db_session):
        chips = Ingredient(
            name="Chocolate Chips",
            name_key="chocolate chips",
            branded=True,
            gram_fat_per_gram=0.3,
            ingredients_text="Sugar, Cocoa",
        )
        chips.components = [
            IngredientComponent(position=0, component_key="sugar", component_name="Sugar"),
            IngredientComponent(position=1, component_key="cocoa", component_name="Cocoa"),
        ]
        sugar = Ingredient(name="Sugar", name_key="sugar", branded=False)
        db_session.add_all([chips, sugar])
        await db_session.commit()

        response = await async_client.get("/v1/ingredients/SUGAR")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "Sugar"
        assert data["sub_ingredients"] == []
        assert data["parent_ingredients"] == [
            {"name": "Chocolate Chips", "ingredient_id": chips.id}
        ]

        data = (await async_client.get("/v1/ingredients/chocolate chips")).json()["data"]
        assert data["gram_fat_per_gram"] == 0.3
        assert data["sub_ingredients"] == [
            {"name": "Sugar", "ingredient_id": sugar.id},
            {"name": "Cocoa", "ingredient_id": None},
        ]

    async def test_get_missing_ingredient(self, async_client: AsyncClient):
        response = await async_client.get("/v1/ingredients/unobtainium")

        assert response.status_code == 404
        assert response.json()["error"]["details"] == {"name": "unobtainium"}


class TestProductAPI:
    async def test_fetch_enqueues_once(self, async_client: AsyncClient):
        first = await async_client.post("/v1/products/3017620422003/fetch")
        second = await async_client.post("/v1/products/3017620422003/fetch")

        assert first.status_code == 200
        assert first.json()["data"]["deduplicated"] is False
        assert second.json()["data"]["job_id"] == first.json()["data"]["job_id"]
        assert second.json()["data"]["deduplicated"] is True

    async def test_get_product(self, async_client: AsyncClient, db_session):
        db_session.add(
            Product(
                barcode="3017620422003",
                product_name="Hazelnut Spread",
                ingredients_text="Sugar, Palm Oil",
                full_response={},
            )
        )
        await db_session.commit()

        response = await async_client.get("/v1/products/3017620422003")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["barcode"] == "3017620422003"
        assert data["product_name"] == "Hazelnut Spread"

    async def test_get_missing_product(self, async_client: AsyncClient):
        response = await async_client.get("/v1/products/000")

        assert response.status_code == 404
