import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from backend.routes import router
from backend import storage
from backend.mcp_server import mcp
from backend.page import render_preview_page
from backend.preview import close_manager, current_manager
from ink_preview.manager import DEFAULT_TITLE

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    close_manager()


def create_app(data_dir: Path | None = None) -> FastAPI:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)

    app = FastAPI(title="Ink Preview", lifespan=_lifespan)
    app.include_router(router, prefix="/api")
    app.mount("/mcp", mcp.sse_app())

    @app.get("/", response_class=HTMLResponse)
    async def preview_page(request: Request):
        manager = current_manager()
        title = manager.title if manager else DEFAULT_TITLE
        scheme = "wss" if request.url.scheme == "https" else "ws"
        ws_url = f"{scheme}://{request.url.netloc}/api/preview/ws"
        return render_preview_page(title, ws_url)

    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
