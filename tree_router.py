"""
Recipe tree API routes.

Handles:
  /api/tree/{algorithm}/{name}
  /api/best-recipes-tree/{name}
  /api/multiple-recipes-tree/{name}
  /api/bfs-tree/{name}
  /api/dfs-tree/{name}
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

import query_service
from store import RecipeStore, get_store

router = APIRouter(tags=["trees"])


@router.get("/api/tree/{algorithm}/{name}")
def api_tree(algorithm: str, name: str, store: RecipeStore = Depends(get_store)) -> Dict[str, Any]:
    return query_service.encode_payload(query_service.single_tree(store, algorithm, name))


@router.get("/api/best-recipes-tree/{name}")
async def api_best_recipes_tree(
    name: str,
    request: Request,
    count: Optional[int] = None,
    algorithm: str = "bfs",
    store: RecipeStore = Depends(get_store),
) -> Dict[str, Any]:
    payload = await query_service.run_until_disconnect(
        request, query_service.best_recipes_tree, store, name, count, algorithm
    )
    return query_service.encode_payload(payload)


@router.get("/api/multiple-recipes-tree/{name}")
async def api_multiple_recipes_tree(
    name: str,
    request: Request,
    count: Optional[int] = None,
    algorithm: str = "dfs",
    store: RecipeStore = Depends(get_store),
) -> Dict[str, Any]:
    payload = await query_service.run_until_disconnect(
        request, query_service.multiple_recipes_tree, store, name, count, algorithm
    )
    return query_service.encode_payload(payload)


@router.get("/api/bfs-tree/{name}")
async def api_bfs_tree(
    name: str,
    request: Request,
    count: Optional[int] = None,
    multithreaded: bool = False,
    store: RecipeStore = Depends(get_store),
) -> Dict[str, Any]:
    payload = await query_service.run_until_disconnect(
        request, query_service.bfs_tree, store, name, count, multithreaded=multithreaded
    )
    return query_service.encode_payload(payload)


@router.get("/api/dfs-tree/{name}")
async def api_dfs_tree(
    name: str,
    request: Request,
    count: Optional[str] = None,
    all_trees: bool = Query(False, alias="all"),
    store: RecipeStore = Depends(get_store),
) -> Dict[str, Any]:
    limit = query_service.parse_tree_count(count, all_trees)
    payload = await query_service.run_until_disconnect(request, query_service.dfs_tree, store, name, limit)
    return query_service.encode_payload(payload)
