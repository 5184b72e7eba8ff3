import logging
import os
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from animation_router import router as animation_router
from element_router import router as element_router
from errors import RecipeServiceError
from search_router import router as search_router
from store import elements_path, load_store
from tree_router import router as tree_router

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("recipes")

app = FastAPI(title="Alchemy recipe finder")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(element_router)
app.include_router(search_router)
app.include_router(tree_router)
app.include_router(animation_router)


@app.exception_handler(RecipeServiceError)
async def _recipe_service_error(request: Request, exc: RecipeServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": "Malformed request", "errors": jsonable_encoder(exc.errors())})


@app.on_event("startup")
def _startup():
    # CorpusLoadFailure propagates and aborts startup.
    store = load_store()
    log.info(
        "Recipe store ready: %d elements, %d effective recipes (%s)",
        len(store.graph),
        store.graph.recipe_count(),
        elements_path(),
    )


@app.options("/{path:path}")
def preflight(path: str) -> Dict[str, Any]:
    return {"ok": True}
