"""FastAPI application exposing the health-check engine over HTTP."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import load_config
from ..engine import EngineOptions, HealthEngine
from ..errors import ConfigError, ReportingError
from ..models import HealthReport, Repository, Severity
from ..reporters import render_report


class HealthResponse(BaseModel):
    status: str


class CheckerInfo(BaseModel):
    id: str
    categories: List[str]
    severity: str
    enabled: bool
    timeout: Optional[float] = None


class CheckRequest(BaseModel):
    paths: List[str] = Field(min_length=1)
    categories: List[str] = Field(default_factory=list)
    exclude_categories: List[str] = Field(default_factory=list)
    severity: Optional[Severity] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    parallel: bool = True
    format: Optional[str] = None


class CheckResponse(BaseModel):
    exit_code: int
    report: Dict[str, Any]
    rendered: Optional[str] = None


def _default_engine_factory(config_path: Path | None = None) -> Callable[[], HealthEngine]:
    def _factory() -> HealthEngine:
        return HealthEngine.from_config(load_config(config_path))

    return _factory


def create_app(engine_factory: Callable[[], HealthEngine] | None = None) -> FastAPI:
    """Create the FastAPI application exposing repohealth operations."""

    factory = engine_factory or _default_engine_factory()
    app = FastAPI(title="repohealth", version="1.0.0")

    async def get_engine() -> HealthEngine:
        # Build per request so configuration edits are picked up.
        return factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/checkers", response_model=List[CheckerInfo])
    async def list_checkers(engine: HealthEngine = Depends(get_engine)) -> List[CheckerInfo]:
        return [
            CheckerInfo(
                id=definition.id,
                categories=list(definition.categories),
                severity=definition.severity.value,
                enabled=definition.enabled,
                timeout=definition.timeout,
            )
            for definition in engine.registry.definitions()
        ]

    @app.get("/categories")
    async def list_categories(engine: HealthEngine = Depends(get_engine)) -> Dict[str, List[str]]:
        return engine.registry.categories()

    @app.post("/check", response_model=CheckResponse)
    async def run_check(
        payload: CheckRequest,
        engine: HealthEngine = Depends(get_engine),
    ) -> CheckResponse:
        repositories = []
        for raw in payload.paths:
            path = Path(raw).expanduser().resolve()
            if not path.is_dir():
                raise FileNotFoundError(f"Repository path not found: {raw}")
            repositories.append(Repository(name=path.name or str(path), path=str(path)))
        options = EngineOptions(
            include_categories=tuple(payload.categories),
            exclude_categories=tuple(payload.exclude_categories),
            severity_threshold=payload.severity,
            output_format=payload.format or "json",
            parallel=payload.parallel,
            timeout_seconds=payload.timeout_seconds,
        )

        def _run() -> HealthReport:
            return engine.run(repositories, options)

        loop = asyncio.get_running_loop()
        report = await loop.run_in_executor(None, _run)
        rendered = render_report(report, payload.format) if payload.format else None
        return CheckResponse(exit_code=report.exit_code, report=report.to_dict(), rendered=rendered)

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ReportingError)
    async def reporting_error_handler(_: Any, exc: ReportingError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1", port: int = 8000, *, config_path: Path | None = None
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app(_default_engine_factory(config_path))
    uvicorn.run(app, host=host, port=port)
