"""Tests for storefront and marketplace-wide search."""

from __future__ import annotations

import pytest

from family_market.search.catalog import StoreNotFoundError, search_store, smart_search
from family_market.search.intent import SearchIntent, fallback_intent
from family_market.store import JOBS, PRODUCTS, SERVICES, USERS


@pytest.fixture
def catalog(store):
    store.seed(USERS, "owner-1", {"storeSlug": "dona-rosa"})
    store.seed(USERS, "owner-2", {"storeSlug": "otra"})
    store.seed(PRODUCTS, "p1", {"usuarioId": "owner-1", "nombre": "Torta de chocolate", "precio": 5000, "estado": "disponible", "categoria": "panaderia_reposteria"})
    store.seed(PRODUCTS, "p2", {"usuarioId": "owner-2", "nombre": "Chocolate amargo", "estado": "disponible", "categoria": "alimentos_bebidas"})
    store.seed(PRODUCTS, "p3", {"usuarioId": "owner-1", "nombre": "Vino Malbec", "estado": "pausado", "categoria": "alimentos_bebidas"})
    store.seed(SERVICES, "s1", {"usuarioId": "owner-1", "titulo": "Clases de repostería", "nombre": "Clases", "descripcion": "Aprendé a hacer tortas", "estado": "disponible", "categoria": "educacion_y_capacitacion"})
    store.seed(JOBS, "j1", {"usuarioId": "owner-1", "titulo": "Ayudante de cocina", "empresa": "Doña Rosa", "ubicacion": {"ciudad": "Rosario"}, "estado": "activo", "categoria": "gastronomia", "habilidades": ["tortas", "panificados"]})
    return store


class TestStoreSearch:
    @pytest.mark.asyncio
    async def test_matches_only_owner_items(self, catalog):
        results = await search_store(catalog, "chocolate", "dona-rosa")
        assert [r["id"] for r in results] == ["p1"]
        assert results[0]["type"] == "producto"
        assert results[0]["price"] == 5000

    @pytest.mark.asyncio
    async def test_description_and_job_fields(self, catalog):
        results = await search_store(catalog, "ROSA", "dona-rosa")
        assert [(r["id"], r["type"]) for r in results] == [("j1", "empleo")]
        assert results[0]["location"] == "Rosario"

    @pytest.mark.asyncio
    async def test_unknown_store(self, catalog):
        with pytest.raises(StoreNotFoundError):
            await search_store(catalog, "x", "nope")

    @pytest.mark.asyncio
    async def test_failing_collection_is_skipped(self, catalog):
        catalog.failing.add(SERVICES)
        results = await search_store(catalog, "torta", "dona-rosa")
        assert [r["id"] for r in results] == ["p1"]


class TestSmartSearch:
    @pytest.mark.asyncio
    async def test_fallback_intent_searches_everything(self, catalog):
        results = await smart_search(catalog, "tortas", fallback_intent("tortas"))
        assert [d["id"] for d in results["servicios"]] == ["s1"]
        assert [d["id"] for d in results["empleos"]] == ["j1"]

    @pytest.mark.asyncio
    async def test_unavailable_items_excluded(self, catalog):
        results = await smart_search(catalog, "malbec", fallback_intent("malbec"))
        assert results["productos"] == []

    @pytest.mark.asyncio
    async def test_category_match_limited_to_selected_sections(self, catalog):
        intent = SearchIntent(
            tipo_busqueda=["productos"],
            categorias_productos=["alimentos_bebidas"],
            palabras_clave=["bebida"],
        )
        results = await smart_search(catalog, "algo rico", intent)
        assert [d["id"] for d in results["productos"]] == ["p2"]
        assert results["servicios"] == []
        assert results["empleos"] == []


class TestSearchRoutes:
    def test_empty_query(self, client):
        assert client.get("/api/search", params={"q": " ", "store": "dona-rosa"}).json() == {"results": []}

    def test_missing_store(self, client):
        assert client.get("/api/search", params={"q": "torta"}).status_code == 400

    def test_unknown_store_404(self, client, catalog):
        assert client.get("/api/search", params={"q": "torta", "store": "nope"}).status_code == 404

    def test_store_search(self, client, catalog):
        resp = client.get("/api/search", params={"q": "chocolate", "store": "dona-rosa"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert [r["id"] for r in resp.json()["results"]] == ["p1"]

    def test_smart_search_requires_query(self, client):
        assert client.post("/api/smart-search", json={}).status_code == 400

    def test_smart_search_with_fallback(self, client, catalog):
        resp = client.post("/api/smart-search", json={"searchQuery": "tortas"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["analysis"]["tipo_busqueda"] == ["productos", "servicios", "empleos"]
        assert [d["id"] for d in body["servicios"]] == ["s1"]
