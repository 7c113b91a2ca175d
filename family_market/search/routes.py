"""Search API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from family_market.search.assistant import CHAT_RESULTS_PER_SECTION, flatten_results
from family_market.search.catalog import StoreNotFoundError, search_store, smart_search
from family_market.services import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["search"])


@router.get("/search")
async def store_search(
    request: Request,
    q: str | None = Query(default=None),
    store: str | None = Query(default=None),
):
    """Search inside one storefront (at most 10 results)."""
    if not q or not q.strip():
        return {"results": []}
    if not store:
        return JSONResponse({"results": [], "error": "store is required"}, status_code=400)

    services = get_services(request)
    try:
        results = await search_store(services.store, q.strip(), store)
    except StoreNotFoundError:
        logger.warning("Search for unknown store %s", store)
        return JSONResponse({"results": [], "error": "Store not found"}, status_code=404)
    except Exception as e:
        logger.exception("Store search failed for %s", store)
        return JSONResponse({"results": [], "error": str(e), "success": False}, status_code=500)
    return {"results": results, "success": True}


@router.post("/smart-search")
async def smart_search_route(request: Request):
    """Marketplace-wide search guided by the LLM intent classifier."""
    try:
        body = await request.json()
    except ValueError:
        body = None
    query = body.get("searchQuery") if isinstance(body, dict) else None
    if not isinstance(query, str) or not query.strip():
        return JSONResponse({"error": "searchQuery is required"}, status_code=400)

    services = get_services(request)
    intent = await services.intent_analyzer.analyze(query)
    if not intent.success:
        logger.info("Smart search using fallback intent: %s", intent.error)

    try:
        results = await smart_search(services.store, query, intent.data)
    except Exception as e:
        logger.exception("Smart search failed for %r", query)
        return JSONResponse({"error": "Smart search failed", "details": str(e)}, status_code=500)
    return {"analysis": intent.data.model_dump(), **results}


@router.post("/chat-mily")
async def chat_mily(request: Request):
    """One chat turn with Mily: search the marketplace and reply about it."""
    try:
        body = await request.json()
    except ValueError:
        body = None
    message = body.get("message") if isinstance(body, dict) else None
    if not isinstance(message, str) or not message.strip():
        return JSONResponse({"error": "Mensaje inválido"}, status_code=400)
    history = body.get("conversationHistory") or []

    services = get_services(request)
    try:
        intent = await services.intent_analyzer.analyze(message)
        results = await smart_search(services.store, message, intent.data, limit=CHAT_RESULTS_PER_SECTION)
        reply = await services.assistant.reply(message, history, results)
    except Exception as e:
        logger.exception("Chat turn failed for %r", message)
        return JSONResponse({"error": "Error interno del servidor", "details": str(e)}, status_code=500)

    return {
        "response": reply,
        "results": flatten_results(results),
        "analysis": {
            "intencion": intent.data.intencion,
            "tipo_busqueda": intent.data.tipo_busqueda,
        },
    }
