from contextlib import asynccontextmanager
from fastapi import FastAPI, BackgroundTasks, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field
from typing import List, Optional
import logging
import re

from api.config import settings
from api.jobs import JobRunner, RunnerBusyError, build_runner
from pricewatch.config import get_site_config
from pricewatch.utils.extractors import is_valid_product_url

# Setup logging directory
settings.log_dir.mkdir(parents=True, exist_ok=True)


# Custom formatter to strip ANSI color codes from file logs
class ColorStripFormatter(logging.Formatter):
    """Formatter that strips ANSI color codes from log messages."""
    ansi_escape = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')

    def format(self, record):
        message = super().format(record)
        return self.ansi_escape.sub('', message)


# Setup logging with color support for console, stripped for file
file_handler = logging.FileHandler(settings.log_file, encoding='utf-8')
file_handler.setFormatter(ColorStripFormatter(settings.log_format))

console_handler = logging.StreamHandler()
console_handler.setFormatter(logging.Formatter(settings.log_format))

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[file_handler, console_handler],
    force=True  # Override any existing configuration
)

# Scraper run loggers get their own handlers so messages appear once
scraper_logger = logging.getLogger('scraper')
scraper_logger.propagate = False
# Only add handlers if not already present (prevents duplicates on module reload)
if not scraper_logger.handlers:
    scraper_file_handler = logging.FileHandler(settings.log_file, encoding='utf-8')
    scraper_file_handler.setFormatter(ColorStripFormatter(settings.log_format))
    scraper_logger.addHandler(scraper_file_handler)

    scraper_console_handler = logging.StreamHandler()
    scraper_console_handler.setFormatter(logging.Formatter(settings.log_format))
    scraper_logger.addHandler(scraper_console_handler)
scraper_logger.setLevel(getattr(logging, settings.log_level.upper()))

logger = logging.getLogger(__name__)


# Filter to suppress noisy polling endpoint access logs
class PollingEndpointFilter(logging.Filter):
    # Endpoints that poll frequently and clutter logs
    SUPPRESSED_ENDPOINTS = ['"GET /api/scrape/', '"GET /api/sessions']

    def filter(self, record):
        try:
            msg = record.getMessage()
        except (TypeError, ValueError):
            msg = str(record.msg)
        for endpoint in self.SUPPRESSED_ENDPOINTS:
            if endpoint in msg:
                return False
        return True


# Apply filter to uvicorn access logger at module load time
uvicorn_access_logger = logging.getLogger("uvicorn.access")
uvicorn_access_logger.addFilter(PollingEndpointFilter())


_runner: Optional[JobRunner] = None


def get_runner() -> JobRunner:
    """Process-wide job runner, created on first use."""
    global _runner
    if _runner is None:
        _runner = build_runner()
    return _runner


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info("Pricewatch Backend Starting Up")
    logger.info("=" * 60)
    logger.info(f"Log file: {settings.log_file}")
    logger.info(f"Browser profile: {settings.scraper_profile_dir}")
    logger.info(f"CORS origins: {settings.cors_origins}")
    logger.info("Backend ready to accept requests")

    yield  # Application runs here

    # Shutdown
    logger.info("=" * 60)
    logger.info("Pricewatch Backend Shutting Down")
    logger.info("=" * 60)
    if _runner is not None:
        _runner.stop_all()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Pricewatch API",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware - allow all origins for development
# Note: allow_credentials must be False when allow_origins is ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    """Return empty response for favicon requests"""
    return Response(status_code=204)


# Pydantic models for API requests
class ProductsRequest(BaseModel):
    urls: List[str] = Field(..., min_length=1)
    start_from: int = Field(1, ge=1)


class CategoryRequest(BaseModel):
    url: str = Field(..., min_length=1)
    max_products: int = Field(10, ge=1, le=settings.scraper_max_batch_size)
    start_from: int = Field(1, ge=1)


class JobStartedResponse(BaseModel):
    session_id: str
    status: str
    targets: Optional[int] = None
    rejected_urls: List[str] = []


# API Endpoints

@app.get("/")
async def root():
    return {"message": "Pricewatch API", "version": "1.0.0"}


@app.post("/api/scrape/products", response_model=JobStartedResponse)
async def scrape_products(
    request: ProductsRequest,
    background_tasks: BackgroundTasks,
    runner: JobRunner = Depends(get_runner),
):
    """Start a background scrape of product URLs"""
    site = get_site_config(settings.scraper_site)
    urls = [url.strip() for url in request.urls if url.strip()]
    valid = [url for url in urls if is_valid_product_url(url, site)]
    rejected = [url for url in urls if url not in valid]
    if not valid:
        raise HTTPException(status_code=422, detail="No valid product URLs")

    try:
        job = runner.create_products_job(valid, start_from=request.start_from)
    except RunnerBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(runner.run, job)
    return JobStartedResponse(
        session_id=job.session_id,
        status=job.status.value,
        targets=len(valid),
        rejected_urls=rejected,
    )


@app.post("/api/scrape/category", response_model=JobStartedResponse)
async def scrape_category(
    request: CategoryRequest,
    background_tasks: BackgroundTasks,
    runner: JobRunner = Depends(get_runner),
):
    """Start a background category discovery and scrape"""
    try:
        job = runner.create_category_job(
            request.url.strip(), request.max_products, start_from=request.start_from
        )
    except RunnerBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(runner.run, job)
    return JobStartedResponse(session_id=job.session_id, status=job.status.value)


@app.get("/api/scrape/{session_id}")
async def get_scrape(session_id: str, runner: JobRunner = Depends(get_runner)):
    """Status, progress events and (when finished) results of a job"""
    job = runner.get(session_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return job.to_dict()


@app.post("/api/scrape/{session_id}/stop")
async def stop_scrape(session_id: str, runner: JobRunner = Depends(get_runner)):
    """Request a cooperative stop; the current product finishes first"""
    job = runner.get(session_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    stopped = runner.stop(session_id)
    return {"session_id": session_id, "stop_requested": stopped, "status": job.status.value}


@app.get("/api/sessions")
async def list_sessions(runner: JobRunner = Depends(get_runner)):
    """Ids of sessions currently running"""
    return {"active": runner.active_ids()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        access_log=True,
        log_config=None,  # Use default but our filter will handle it
        timeout_keep_alive=5,
        timeout_graceful_shutdown=5.0,
    )
