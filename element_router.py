"""
Element API routes.

Handles:
  /api/elements
  /api/elements/{name}
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

import query_service
from store import RecipeStore, get_store

router = APIRouter(tags=["elements"])


@router.get("/api/elements")
def api_elements(store: RecipeStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return query_service.list_elements(store)


@router.get("/api/elements/{name}")
def api_element(name: str, store: RecipeStore = Depends(get_store)) -> Dict[str, Any]:
    return query_service.get_element(store, name)
