"""Catalog search over the document store.

Two flavours:
- ``search_store`` looks inside one storefront (resolved from its slug)
  with a plain case-insensitive substring match.
- ``smart_search`` scans the whole marketplace guided by a SearchIntent.

Both read a bounded number of documents and filter in process; the
document store has no full-text index.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from family_market.search.intent import SearchIntent
from family_market.store import JOBS, PRODUCTS, SERVICES, USERS, DocumentStore

logger = logging.getLogger(__name__)

MAX_RESULTS = 10
SCAN_LIMIT = 100


class StoreNotFoundError(LookupError):
    """No user owns the requested store slug."""


def _lower(value: Any) -> str:
    return value.lower() if isinstance(value, str) else ""


def _job_location(doc: dict[str, Any]) -> str | None:
    location = doc.get("ubicacion")
    if isinstance(location, dict):
        return location.get("ciudad") or location.get("provincia")
    if isinstance(location, str):
        return location
    return None


def _product_result(doc: dict[str, Any], kind: str) -> dict[str, Any]:
    return {
        "id": doc["id"],
        "name": doc.get("nombre") or doc.get("titulo"),
        "price": doc.get("precio"),
        "image": doc.get("imagenPrincipal") or doc.get("imagen"),
        "description": doc.get("descripcion"),
        "slug": doc["id"],
        "type": kind,
    }


def _job_result(doc: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": doc["id"],
        "name": doc.get("titulo") or doc.get("nombre"),
        "company": doc.get("empresa"),
        "location": _job_location(doc),
        "image": doc.get("foto"),
        "description": doc.get("descripcion"),
        "slug": doc["id"],
        "type": "empleo",
    }


def _catalog_matches(doc: dict[str, Any], needle: str) -> bool:
    return needle in _lower(doc.get("nombre")) or needle in _lower(doc.get("descripcion"))


def _job_matches(doc: dict[str, Any], needle: str) -> bool:
    fields = (
        doc.get("titulo"),
        doc.get("nombre"),
        doc.get("descripcion"),
        doc.get("empresa"),
        _job_location(doc),
    )
    return any(needle in _lower(value) for value in fields)


# collection -> (matcher, result builder)
_STORE_SEARCH_PLAN: list[tuple[str, Callable[[dict, str], bool], Callable[[dict], dict]]] = [
    (PRODUCTS, _catalog_matches, lambda d: _product_result(d, "producto")),
    (SERVICES, _catalog_matches, lambda d: _product_result(d, "servicio")),
    (JOBS, _job_matches, _job_result),
]


async def resolve_store_owner(store: DocumentStore, store_slug: str) -> str:
    """User id owning ``store_slug``."""
    users = await store.where(USERS, "storeSlug", store_slug, limit=1)
    if not users:
        raise StoreNotFoundError(store_slug)
    return users[0]["id"]


async def search_store(store: DocumentStore, query: str, store_slug: str) -> list[dict[str, Any]]:
    """Search one storefront's products, services and jobs.

    A collection that fails to load is logged and skipped.
    """
    owner_id = await resolve_store_owner(store, store_slug)
    needle = query.lower()
    results: list[dict[str, Any]] = []

    for collection, matches, to_result in _STORE_SEARCH_PLAN:
        try:
            docs = await store.where(collection, "usuarioId", owner_id)
        except Exception as e:
            logger.error("Search in %s failed for store %s: %s", collection, store_slug, e)
            continue
        results.extend(to_result(doc) for doc in docs if matches(doc, needle))
        logger.debug("Scanned %d %s for store %s", len(docs), collection, store_slug)

    logger.info("Store search %r in %s: %d results", query, store_slug, len(results))
    return results[:MAX_RESULTS]


# ── Smart search ─────────────────────────────────────────────────────────


def _search_terms(query: str) -> list[str]:
    return [term for term in query.lower().split() if len(term) > 2]


def _category_matches(doc_category: str, categories: list[str], word_overlap: bool) -> bool:
    if not doc_category:
        return False
    for category in categories:
        wanted = category.lower()
        if doc_category == wanted or wanted in doc_category or doc_category in wanted:
            return True
        if word_overlap and set(wanted.split("_")) & set(doc_category.split("_")):
            return True
    return False


def _searchable_text(doc: dict[str, Any], fields: tuple[str, ...], list_field: str) -> str:
    parts = [str(doc.get(f) or "") for f in fields]
    extra = doc.get(list_field)
    if isinstance(extra, list):
        parts.append(" ".join(str(x) for x in extra))
    return " ".join(parts).lower()


def _smart_matches(
    doc: dict[str, Any],
    terms: list[str],
    intent: SearchIntent,
    categories: list[str],
    fields: tuple[str, ...],
    list_field: str,
    word_overlap: bool,
) -> bool:
    text = _searchable_text(doc, fields, list_field)
    if any(term in text for term in terms):
        return True
    if any(keyword.lower() in text for keyword in intent.palabras_clave):
        return True
    return _category_matches(_lower(doc.get("categoria")), categories, word_overlap)


async def _smart_collection(
    store: DocumentStore,
    collection: str,
    live_status: str,
    query: str,
    intent: SearchIntent,
    categories: list[str],
    fields: tuple[str, ...],
    list_field: str,
    word_overlap: bool = False,
    limit: int = MAX_RESULTS,
) -> list[dict[str, Any]]:
    try:
        docs = await store.scan(collection, SCAN_LIMIT)
    except Exception as e:
        logger.error("Smart search could not read %s: %s", collection, e)
        return []
    live = [doc for doc in docs if doc.get("estado") == live_status]
    terms = _search_terms(query)
    matched = [
        doc
        for doc in live
        if _smart_matches(doc, terms, intent, categories, fields, list_field, word_overlap)
    ]
    logger.info("Smart search %s: %d of %d live documents matched", collection, len(matched), len(live))
    return matched[:limit]


async def smart_search(
    store: DocumentStore,
    query: str,
    intent: SearchIntent,
    limit: int = MAX_RESULTS,
) -> dict[str, list[dict[str, Any]]]:
    """Marketplace-wide search over the sections the intent selects.

    Each section returns at most ``limit`` live documents.
    """
    results: dict[str, list[dict[str, Any]]] = {"productos": [], "servicios": [], "empleos": []}

    if "productos" in intent.tipo_busqueda:
        results["productos"] = await _smart_collection(
            store,
            PRODUCTS,
            "disponible",
            query,
            intent,
            intent.categorias_productos,
            ("nombre", "titulo", "descripcion", "categoria", "subcategoria"),
            "palabrasClave",
            word_overlap=True,
            limit=limit,
        )
    if "servicios" in intent.tipo_busqueda:
        results["servicios"] = await _smart_collection(
            store,
            SERVICES,
            "disponible",
            query,
            intent,
            intent.categorias_servicios,
            ("titulo", "descripcion", "categoria", "subcategoria"),
            "palabrasClave",
            limit=limit,
        )
    if "empleos" in intent.tipo_busqueda:
        results["empleos"] = await _smart_collection(
            store,
            JOBS,
            "activo",
            query,
            intent,
            intent.categorias_empleos,
            ("titulo", "descripcion", "categoria", "subcategoria"),
            "habilidades",
            limit=limit,
        )
    return results
