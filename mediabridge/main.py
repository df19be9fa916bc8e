"""FastAPI main application."""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import os
import logging
import traceback

from mediabridge.config import init_config
from mediabridge.db.database import init_db
from mediabridge.api.routes import router
from mediabridge.scheduler import start_scheduler, stop_scheduler

# Setup logging (will be configured from config after init)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

# Initialize config
# Support both /config/config.yaml (Docker) and ./config/config.yaml (local dev)
config_path = os.getenv("CONFIG_PATH", "/config/config.yaml")

# Try multiple paths
possible_paths = [
    config_path,
    "/config/config.yaml",
    "./config/config.yaml",
    os.path.join(os.path.dirname(__file__), "..", "config", "config.yaml"),
]

config_path_found = None
for path in possible_paths:
    if os.path.exists(path):
        config_path_found = path
        break

if not config_path_found:
    error_msg = f"""
ERROR: Configuration file not found!

Tried the following paths:
{chr(10).join(f'  - {p}' for p in possible_paths)}

Please ensure:
1. The config directory is mounted in Docker: -v ./config:/config:ro
2. The file config/config.yaml exists (copy from config.example.yaml)
3. The CONFIG_PATH environment variable points to the correct file
"""
    logger.error(error_msg)
    raise FileNotFoundError(error_msg)

logger.info(f"Loading configuration from: {config_path_found}")
config = init_config(config_path_found)
logging.getLogger().setLevel(config.app.log_level.upper())

for problem in config.validate_for_sync():
    logger.warning(f"Configuration: {problem}")

# Initialize database
data_dir = os.getenv("DATA_DIR", config.app.data_dir)
try:
    init_db(data_dir)
except Exception as e:
    logger.error(f"Failed to initialize database: {str(e)}")
    logger.error(f"Data directory: {data_dir}")
    logger.error("Please ensure the data volume is mounted (-v ./data:/data) and writable")
    raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_scheduler()
    yield
    stop_scheduler()


# Create FastAPI app
app = FastAPI(title="Media Bridge", version="1.0.0", lifespan=lifespan)

# Include API routes
app.include_router(router)


# Global exception handler for unhandled exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions with detailed logging."""
    logger.exception(f"Unhandled exception in {request.method} {request.url}")
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc),
            "type": exc.__class__.__name__,
            "message": f"Internal server error: {str(exc)}",
            "path": str(request.url),
            "method": request.method,
            "traceback": traceback.format_exc()
        }
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Media Bridge API"}
