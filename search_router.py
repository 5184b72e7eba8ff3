"""
Path search API routes.

Handles:
  POST /api/search
  /api/recipes/{algorithm}/{name}
  /api/multiple-recipes/{name}
  /api/best-recipes/{name}
  /api/bidirectional/{name}

Searches run in the threadpool and are cancelled when the client goes away.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

import query_service
from store import RecipeStore, get_store

router = APIRouter(tags=["search"])


class SearchRequest(BaseModel):
    targetElement: str
    algorithm: str = "bfs"
    maxResults: int = 1
    singlePath: bool = False
    multithreaded: bool = False


@router.post("/api/search")
async def api_search(
    req: SearchRequest, request: Request, store: RecipeStore = Depends(get_store)
) -> Dict[str, Any]:
    payload = await query_service.run_until_disconnect(
        request,
        query_service.find_paths,
        store,
        req.algorithm,
        req.targetElement,
        max_results=req.maxResults,
        single_path=req.singlePath,
        multithreaded=req.multithreaded,
    )
    return query_service.encode_payload(payload)


@router.get("/api/recipes/{algorithm}/{name}")
async def api_recipes(
    algorithm: str,
    name: str,
    request: Request,
    max_results: Optional[int] = Query(None, alias="maxResults"),
    multithreaded: bool = False,
    store: RecipeStore = Depends(get_store),
) -> Dict[str, Any]:
    payload = await query_service.run_until_disconnect(
        request, query_service.find_paths, store, algorithm, name,
        max_results=max_results, multithreaded=multithreaded,
    )
    return query_service.encode_payload(payload)


@router.get("/api/multiple-recipes/{name}")
async def api_multiple_recipes(
    name: str,
    request: Request,
    count: Optional[int] = None,
    store: RecipeStore = Depends(get_store),
) -> Dict[str, Any]:
    payload = await query_service.run_until_disconnect(request, query_service.multiple_recipes, store, name, count)
    return query_service.encode_payload(payload)


@router.get("/api/best-recipes/{name}")
async def api_best_recipes(
    name: str,
    request: Request,
    count: Optional[int] = None,
    store: RecipeStore = Depends(get_store),
) -> Dict[str, Any]:
    payload = await query_service.run_until_disconnect(request, query_service.best_recipes, store, name, count)
    return query_service.encode_payload(payload)


@router.get("/api/bidirectional/{name}")
async def api_bidirectional(
    name: str,
    request: Request,
    count: Optional[int] = None,
    multithreaded: bool = False,
    single: bool = False,
    tree: bool = False,
    store: RecipeStore = Depends(get_store),
) -> Dict[str, Any]:
    payload = await query_service.run_until_disconnect(
        request, query_service.bidirectional_query, store, name, count,
        multithreaded=multithreaded, single=single, as_tree=tree,
    )
    return query_service.encode_payload(payload)
