"""
Release landing page: the music "smart link."

GET  /r/{slug}         → HTML page listing the release's streaming links.
                         Records a `view` before responding.
POST /r/{slug}/events  → Platform / button clicks reported by the page's
                         inline script, with the browser's own
                         document.referrer and location.href.

The inline script never delays navigation: it beacons and lets the click
through.
"""

import html
import json
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel, Field

from app.core.ingest import IngestionPipeline, VisitContext
from app.core.visit_record import ParentType, VisitKind
from app.dependencies import get_pipeline, get_store
from app.store.base import RELEASES, RecordStore

import structlog

logger = structlog.get_logger()
router = APIRouter()


class ReleaseEvent(BaseModel):
    kind: VisitKind = VisitKind.PLATFORM_CLICK
    platform: str | None = Field(default=None, max_length=50)
    url: str | None = Field(default=None, max_length=2048)
    button_label: str | None = Field(default=None, max_length=100)
    referrer: str | None = Field(default=None, max_length=2048)
    page_url: str | None = Field(default=None, max_length=2048)


async def _active_release(store: RecordStore, slug: str) -> dict:
    release = await store.find_by_slug(RELEASES, slug)
    if not release or not release.get("is_active", True):
        raise HTTPException(status_code=404, detail="Not found")
    return release


def _platform_name(platform: str) -> str:
    return platform.replace("-", " ").replace("_", " ").title()


def _render_links(music_links: list[dict]) -> str:
    items = []
    for link in music_links:
        url = link.get("url")
        platform = link.get("platform") or ""
        if not url:
            continue
        title = link.get("title")
        label = html.escape(_platform_name(platform))
        if title:
            label += f" <small>{html.escape(title)}</small>"
        items.append(
            f'<li><a class="platform" href="{html.escape(url)}" '
            f'data-platform="{html.escape(platform)}" rel="noopener">{label}</a></li>'
        )
    return "\n".join(items) or "<li>No links yet</li>"


@router.get("/r/{slug}")
async def release_page(
    slug: str,
    request: Request,
    store: RecordStore = Depends(get_store),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    release = await _active_release(store, slug)

    await pipeline.dispatch(VisitContext.from_request(
        request,
        parent_id=release["id"],
        parent_type=ParentType.RELEASE.value,
        kind=VisitKind.VIEW.value,
    ))

    nonce = secrets.token_urlsafe(16)
    artist = html.escape(release.get("artist_name") or "")
    name = html.escape(release.get("release_name") or slug)
    artwork = release.get("artwork_url")
    artwork_tag = f'<img src="{html.escape(artwork)}" alt="{name}" width="300">' if artwork else ""
    events_url = json.dumps(f"/r/{slug}/events").replace("<", "\\u003c")

    page = f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<title>{name} by {artist}</title>
<meta property="og:title" content="{name} by {artist}">
</head>
<body>
{artwork_tag}
<h1>{name}</h1>
<h2>{artist}</h2>
<ul>
{_render_links(release.get("music_links") or [])}
</ul>
<script nonce="{nonce}">
(function() {{
  function send(data) {{
    data.referrer = document.referrer || null;
    data.page_url = window.location.href;
    var body = JSON.stringify(data);
    try {{
      navigator.sendBeacon({events_url}, new Blob([body], {{ type: "application/json" }}));
    }} catch(e) {{
      try {{
        fetch({events_url}, {{
          method: "POST",
          headers: {{ "Content-Type": "application/json" }},
          body: body,
          keepalive: true
        }});
      }} catch(e2) {{}}
    }}
  }}
  document.querySelectorAll("a.platform").forEach(function(a) {{
    a.addEventListener("click", function() {{
      send({{ kind: "platform_click", platform: a.dataset.platform, url: a.href }});
    }});
  }});
}})();
</script>
</body>
</html>"""

    return HTMLResponse(
        content=page,
        headers={
            "Content-Security-Policy": f"default-src 'none'; img-src https: data:; script-src 'nonce-{nonce}'; connect-src 'self'",
            "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
        },
    )


@router.post("/r/{slug}/events", status_code=204)
async def release_event(
    slug: str,
    event: ReleaseEvent,
    request: Request,
    store: RecordStore = Depends(get_store),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    release = await _active_release(store, slug)
    if event.kind == VisitKind.VIEW:
        # Views are recorded server-side when the page is served
        raise HTTPException(status_code=400, detail="Views are recorded by the page itself")

    await pipeline.dispatch(VisitContext.from_request(
        request,
        parent_id=release["id"],
        parent_type=ParentType.RELEASE.value,
        kind=event.kind.value,
        page_url=event.page_url,
        referrer=event.referrer or "",
        target_url=event.url,
        platform=event.platform,
        button_label=event.button_label,
    ))
    logger.info("release_event_received", slug=slug, kind=event.kind.value, platform=event.platform)
    return Response(status_code=204)
