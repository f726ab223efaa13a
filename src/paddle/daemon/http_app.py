"""HTTP surface: a single catch-all route dispatching on exact URL path."""

from __future__ import annotations

from fastapi import FastAPI, Request, Response

from .. import __version__
from .instance import Paddle

METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def create_app(paddle: Paddle) -> FastAPI:
    app = FastAPI(title="paddle", version=__version__, docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=METHODS)
    async def dispatch(request: Request, path: str) -> Response:
        route = paddle.find_route(request.url.path)
        if route is None:
            return Response(status_code=404)
        return await route.handler(request)

    return app
