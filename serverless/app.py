"""
serverless/app.py -- HTTP trigger for the serverless caller.

Run with:  uvicorn serverless.app:app --port 7071

POST /api/GraphQLUsers -> 200 {"data": {"users": [...]}}
                          502 when the backend is unreachable or refuses the call

The UsersQueryFunction is built in the lifespan, so missing configuration
stops the process at startup instead of failing every invocation.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.errors import UpstreamUnavailableError
from serverless.function import UsersQueryFunction

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("userportal.serverless")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.users_function = UsersQueryFunction()
    logger.info("Serverless caller ready (backend %s)", app.state.users_function.users_url)
    yield


app = FastAPI(title="UserPortal serverless caller", lifespan=lifespan, docs_url=None, redoc_url=None)


@app.exception_handler(UpstreamUnavailableError)
async def upstream_error_handler(request: Request, exc: UpstreamUnavailableError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"error": {"code": exc.code, "message": exc.message, "detail": exc.detail}},
    )


@app.post("/api/GraphQLUsers")
def graphql_users(request: Request) -> dict:
    """Return every backend user wrapped in a GraphQL data envelope."""
    return request.app.state.users_function.run()
