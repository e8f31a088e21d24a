"""FastAPI application entrypoint for routescan service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import DEFAULT_OPENAPI_VERSION, ConfigError, ScanConfig
from ..models import RouteInfo
from ..openapi import build_document, route_summaries
from ..scanner import ProjectScanner

T = TypeVar("T")

ScannerFactory = Callable[[Sequence[str]], ProjectScanner]


class ScanRequest(BaseModel):
    paths: List[str] = Field(min_length=1)
    exclude_paths: List[str] = Field(default_factory=list)


class RouteSummary(BaseModel):
    method: str
    path: str
    file: str
    line: Optional[int] = None
    framework: Optional[str] = None
    handler: Optional[str] = None
    body: Optional[List[str]] = None
    query: Optional[List[str]] = None
    params: Optional[List[str]] = None
    headers: Optional[List[str]] = None
    responses: Dict[str, Optional[List[str]]] = Field(default_factory=dict)


class RoutesResponse(BaseModel):
    routes: List[RouteSummary]


class GenerateRequest(ScanRequest):
    title: str = "API"
    version: str = "1.0.0"
    description: Optional[str] = None
    base_url: Optional[str] = None
    openapi_version: str = DEFAULT_OPENAPI_VERSION


class HealthResponse(BaseModel):
    status: str


def _default_scanner(exclude_paths: Sequence[str] = ()) -> ProjectScanner:
    return ProjectScanner(exclude_paths=exclude_paths)


def _check_paths(paths: Sequence[str]) -> None:
    for value in paths:
        if any(char in value for char in "*?["):
            continue
        if not Path(value).expanduser().exists():
            raise FileNotFoundError(f"Scan path not found: {value}")


async def _in_executor(func: Callable[[], T]) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func)


def create_app(scanner_factory: ScannerFactory = _default_scanner) -> FastAPI:
    """Create the FastAPI application exposing routescan operations."""

    app = FastAPI(title="routescan service", version="1.0.0")

    async def get_scanner_factory() -> ScannerFactory:
        return scanner_factory

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/routes", response_model=RoutesResponse)
    async def list_routes(
        payload: ScanRequest,
        factory: ScannerFactory = Depends(get_scanner_factory),
    ) -> RoutesResponse:
        def _run_scan() -> List[RouteInfo]:
            _check_paths(payload.paths)
            return factory(payload.exclude_paths).scan(payload.paths)

        routes = await _in_executor(_run_scan)
        return RoutesResponse(routes=[RouteSummary(**item) for item in route_summaries(routes)])

    @app.post("/generate")
    async def generate(
        payload: GenerateRequest,
        factory: ScannerFactory = Depends(get_scanner_factory),
    ) -> Dict[str, Any]:
        if not payload.openapi_version.startswith("3."):
            raise ConfigError(f"Unsupported openapi_version '{payload.openapi_version}'; expected 3.x")
        config = ScanConfig(
            root=Path.cwd(),
            scan_paths=list(payload.paths),
            title=payload.title,
            version=payload.version,
            description=payload.description,
            base_url=payload.base_url,
            openapi_version=payload.openapi_version,
            exclude_paths=list(payload.exclude_paths),
        )

        def _run_generate() -> Dict[str, Any]:
            _check_paths(payload.paths)
            routes = factory(payload.exclude_paths).scan(payload.paths)
            return build_document(config, routes)

        return await _in_executor(_run_generate)

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(RuntimeError)
    async def runtime_error_handler(_: Any, exc: RuntimeError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)


__all__ = ["create_app", "run_service"]
