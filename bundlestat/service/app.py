"""FastAPI application entrypoint for bundlestat service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import ErrorKind, PackageBuildError
from ..pipeline import StatsPipeline

T = TypeVar("T")

_STATUS_BY_KIND = {
    ErrorKind.PACKAGE_NOT_FOUND: 404,
    ErrorKind.ENTRY_POINT: 422,
}


class HealthResponse(BaseModel):
    status: str


class ExportSize(BaseModel):
    name: str
    size: int
    gzip: int
    path: Optional[str] = None
    ignoredMissingDependencies: List[str] = []


class ExportSizesResponse(BaseModel):
    package: str
    assets: List[ExportSize]


class ExportsResponse(BaseModel):
    package: str
    exports: Dict[str, str]


def _default_pipeline() -> StatsPipeline:
    return StatsPipeline()


def create_app(
    pipeline_factory: Callable[[], StatsPipeline] = _default_pipeline,
) -> FastAPI:
    """Create the FastAPI application exposing bundlestat measurements."""

    app = FastAPI(title="bundlestat", version="0.1.0")
    # One pipeline per app so that concurrent requests share a governor.
    shared: Dict[str, StatsPipeline] = {}

    async def get_pipeline() -> StatsPipeline:
        if "pipeline" not in shared:
            shared["pipeline"] = pipeline_factory()
        return shared["pipeline"]

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/stats")
    async def stats(
        package: str = Query(..., min_length=1),
        pipeline: StatsPipeline = Depends(get_pipeline),
    ) -> Dict[str, Any]:
        result = await _in_executor(lambda: pipeline.get_stats(package))
        return result.to_dict()

    @app.get("/export-sizes", response_model=ExportSizesResponse)
    async def export_sizes(
        package: str = Query(..., min_length=1),
        pipeline: StatsPipeline = Depends(get_pipeline),
    ) -> ExportSizesResponse:
        entries = await _in_executor(lambda: pipeline.get_export_sizes(package))
        return ExportSizesResponse(
            package=package,
            assets=[ExportSize(**entry.to_dict()) for entry in entries],
        )

    @app.get("/exports", response_model=ExportsResponse)
    async def exports(
        package: str = Query(..., min_length=1),
        pipeline: StatsPipeline = Depends(get_pipeline),
    ) -> ExportsResponse:
        found = await _in_executor(lambda: pipeline.get_all_exports(package))
        return ExportsResponse(package=package, exports=found)

    @app.exception_handler(PackageBuildError)
    async def package_error_handler(_: Any, exc: PackageBuildError) -> JSONResponse:
        return JSONResponse(status_code=_STATUS_BY_KIND.get(exc.kind, 500), content=exc.to_dict())

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Any, exc: ValueError) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


async def _in_executor(func: Callable[[], T]) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func)


def run_service(
    host: str = "127.0.0.1",
    port: int = 8000,
    pipeline_factory: Callable[[], StatsPipeline] = _default_pipeline,
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app(pipeline_factory)
    uvicorn.run(app, host=host, port=port)
