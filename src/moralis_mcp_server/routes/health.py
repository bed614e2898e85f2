"""Health check endpoint."""

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint. Static; never touches sessions."""
    config = request.app.state.config
    return JSONResponse(
        {
            "status": "OK",
            "server": config.server_name,
            "version": config.server_version,
        }
    )


health_routes = [
    Route("/health", health_check, methods=["GET"]),
]
