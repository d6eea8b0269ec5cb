"""
Paste routes.
Handles create, fetch (API), and view (HTML) operations.
"""
import html
import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from vanishpaste.dependencies import get_paste_service, get_reference_time
from vanishpaste.exceptions import PasteNotFoundError
from vanishpaste.models import ErrorResponse, PasteCreate, PasteResponse, PasteView
from vanishpaste.service import FetchedPaste, PasteService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/api/pastes",
    response_model=PasteResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
)
async def create_paste(
    paste: PasteCreate,
    service: PasteService = Depends(get_paste_service),
    now: datetime = Depends(get_reference_time),
) -> PasteResponse:
    """
    Create a new paste.

    Args:
        paste: Paste data (content, optional ttl_seconds, optional max_views)

    Returns:
        Paste ID and shareable URL
    """
    created = await service.create_paste(
        content=paste.content,
        now=now,
        ttl_seconds=paste.ttl_seconds,
        max_views=paste.max_views,
    )
    return PasteResponse(id=created.id, url=created.url)


@router.get(
    "/api/pastes/{paste_id}",
    response_model=PasteView,
    responses={404: {"model": ErrorResponse}},
)
async def fetch_paste(
    paste_id: str,
    service: PasteService = Depends(get_paste_service),
    now: datetime = Depends(get_reference_time),
) -> PasteView:
    """
    Fetch a paste (API endpoint).
    Each fetch spends one view.

    Raises:
        PasteNotFoundError: If paste not found, expired, or view limit exceeded (404)
    """
    paste = await service.fetch_paste(paste_id, now)
    return PasteView(
        content=paste.content,
        remaining_views=paste.remaining_views,
        expires_at=paste.expires_at_iso,
    )


@router.get("/p/{paste_id}", response_class=HTMLResponse)
async def view_paste(
    paste_id: str,
    service: PasteService = Depends(get_paste_service),
    now: datetime = Depends(get_reference_time),
) -> HTMLResponse:
    """
    View a paste as HTML.
    Each view spends one view, exactly like the API endpoint.
    """
    try:
        paste = await service.fetch_paste(paste_id, now)
    except PasteNotFoundError:
        return HTMLResponse(render_not_found_page(), status_code=404)

    return HTMLResponse(render_paste_page(paste))


PAGE_STYLE = """
        :root {
            --primary: #6366f1;
            --bg: #f8fafc;
            --text: #1e293b;
            --border: #e2e8f0;
        }
        body {
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Arial, sans-serif;
            background: var(--bg);
            color: var(--text);
            display: flex;
            flex-direction: column;
            align-items: center;
            min-height: 100vh;
            margin: 0;
            padding: 2rem;
        }
        .container {
            background: white;
            border-radius: 10px;
            box-shadow: 0 4px 6px -1px rgba(0, 0, 0, 0.1);
            max-width: 800px;
            width: 100%;
            padding: 2.5rem;
        }
        h1 {
            color: var(--primary);
            margin-top: 0;
        }
        .meta {
            display: flex;
            gap: 1.5rem;
            font-size: 0.875rem;
            color: #64748b;
            margin-bottom: 1rem;
        }
        pre {
            background: #f1f5f9;
            border: 1px solid var(--border);
            border-radius: 0.5rem;
            padding: 1.5rem;
            white-space: pre-wrap;
            word-wrap: break-word;
            font-family: "Courier New", monospace;
            line-height: 1.6;
        }
        a {
            color: var(--primary);
            font-weight: 600;
            text-decoration: none;
        }
"""


def _format_expiry(paste: FetchedPaste) -> str:
    if paste.expires_at is None:
        return "Never"
    return paste.expires_at.strftime("%Y-%m-%d %H:%M:%S UTC")


def render_paste_page(paste: FetchedPaste) -> str:
    """Render a paste as HTML. Content is escaped so it can never run as markup."""
    remaining = "Unlimited" if paste.remaining_views is None else str(paste.remaining_views)
    content_escaped = html.escape(paste.content, quote=True)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>View Paste - Vanishpaste</title>
    <style>{PAGE_STYLE}</style>
</head>
<body>
    <div class="container">
        <h1>View Paste</h1>
        <div class="meta">
            <span>Remaining Views: {remaining}</span>
            <span>Expires At: {_format_expiry(paste)}</span>
        </div>
        <pre>{content_escaped}</pre>
        <p><a href="/">&larr; Create New Paste</a></p>
    </div>
</body>
</html>"""


def render_not_found_page() -> str:
    """Render a 404 error page."""
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Not Found - Vanishpaste</title>
    <style>{PAGE_STYLE}</style>
</head>
<body>
    <div class="container">
        <h1>404 - Paste not found or unavailable</h1>
        <p><a href="/">&larr; Create New Paste</a></p>
    </div>
</body>
</html>"""
