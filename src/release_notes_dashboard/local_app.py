"""Local web dashboard for viewing release notes."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Set
from urllib.parse import urlparse

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse

from release_notes_dashboard.assembler import Message, ReleaseAssembler, Thread, filter_threads
from release_notes_dashboard.auto_refresh import RefreshCoordinator, SheetPoller
from release_notes_dashboard.config import DashboardConfig, load_config
from release_notes_dashboard.release_store import ReleaseStore
from release_notes_dashboard.sheet_client import SheetClient
from release_notes_dashboard.text_normalizer import to_html
from release_notes_dashboard.timestamps import format_timestamp

logger = logging.getLogger(__name__)

app = FastAPI(title="Release Notes Dashboard (Local)")

_store = ReleaseStore()

# Auto-refresh service instances
_pollers: List[SheetPoller] = []
_coordinator: RefreshCoordinator = RefreshCoordinator.get_instance()

CSRF_HEADER = "X-Release-Notes-CSRF"
CSRF_TOKEN = secrets.token_urlsafe(32)
ALLOWED_HOSTS = {"127.0.0.1:8080", "localhost:8080", "testserver"}


def _build_assembler(config: DashboardConfig) -> ReleaseAssembler:
    return ReleaseAssembler(policy=config.noise_policy(), overrides=config.load_overrides())


def _get_client(config: DashboardConfig) -> SheetClient:
    if _pollers:
        return _pollers[0].client
    return SheetClient(config.sheet_url, timeout=config.request_timeout)


def _build_payload(query: str | None = None) -> Dict[str, Any]:
    config = load_config()
    threads = _store.threads
    visible = filter_threads(threads, query)

    error_message = None
    if not config.sheet_url:
        error_message = "No sheet URL configured."
    elif not threads:
        error_message = "No release notes found."

    last_refresh = _store.last_refresh
    return {
        "sheetUrl": config.sheet_url,
        "stages": config.stages,
        "query": query or "",
        "stats": _store.stats(visible),
        "releases": [_serialize_thread(thread) for thread in visible],
        "lastRefresh": last_refresh.isoformat() if last_refresh else None,
        "error": error_message,
    }


def _serialize_message(message: Message) -> Dict[str, Any]:
    """Normalize message data for the frontend."""

    return {
        "occurredAt": message.occurred_at,
        "displayTime": format_timestamp(message.occurred_at),
        "sender": message.sender,
        "mainText": message.main_text,
        "detailText": message.detail_text,
        "mainHtml": to_html(message.main_text),
        "detailHtml": to_html(message.detail_text),
        "attachmentUrl": message.attachment_url,
        "externalUrl": message.external_url,
    }


def _serialize_thread(thread: Thread) -> Dict[str, Any]:
    return {
        "key": thread.key,
        "stage": thread.stage,
        "parent": _serialize_message(thread.parent),
        "replies": [_serialize_message(reply) for reply in thread.replies],
        "links": [link.to_dict() for link in thread.extracted_links],
    }


def _origin_from_url(value: str | None) -> str | None:
    if not value:
        return None
    try:
        parsed = urlparse(value)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def _expected_origins(request: Request) -> Set[str]:
    host = request.headers.get("host")
    allowed_hosts = set(ALLOWED_HOSTS)
    if host:
        allowed_hosts.add(host)
    origins: Set[str] = set()
    for entry in allowed_hosts:
        origins.add(f"http://{entry}")
        origins.add(f"https://{entry}")
    return origins


def _require_authorized_post(request: Request) -> None:
    allowed_origins = _expected_origins(request)

    origin = _origin_from_url(request.headers.get("origin"))
    if origin and origin not in allowed_origins:
        raise HTTPException(status_code=403, detail="Cross-origin POST blocked")

    referer = _origin_from_url(request.headers.get("referer"))
    if referer and referer not in allowed_origins:
        raise HTTPException(status_code=403, detail="Cross-site POST blocked")

    token = request.headers.get(CSRF_HEADER)
    if token != CSRF_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid or missing CSRF token")


def _build_health_response(poller_stats: List[Dict[str, Any]], coordinator_stats: Dict[str, Any]) -> Dict[str, Any]:
    """Summarize poller state into OK / DEGRADED / ERROR."""

    now = datetime.now()
    reasons: List[str] = []
    pollers: List[Dict[str, Any]] = []
    overall = "OK"

    for stats in poller_stats:
        issues: List[str] = []
        status = "OK"

        if not stats.get("running"):
            issues.append("Poller not running")
            status = "ERROR"
        if stats.get("error_count", 0) > 3:
            issues.append(f"Repeated errors: {stats.get('last_error')}")
            status = "ERROR"

        last_fetch = stats.get("last_fetch")
        interval = stats.get("interval") or 60
        if last_fetch and status == "OK":
            try:
                age = (now - datetime.fromisoformat(last_fetch)).total_seconds()
            except ValueError:
                age = None
            if age is not None and age > interval * 3:
                issues.append(f"Last fetch becoming stale ({int(age)}s ago)")
                status = "DEGRADED"

        if issues:
            reasons.append(f"{stats.get('sheet_url')}: {'; '.join(issues)}")
        if status == "ERROR" or (status == "DEGRADED" and overall == "OK"):
            overall = status

        pollers.append({**stats, "status": status, "issues": issues})

    return {
        "status": overall,
        "reasons": reasons,
        "timestamp": now.isoformat(),
        "pollers": pollers,
        "coordinator": coordinator_stats,
    }


INDEX_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <meta name="release-notes-csrf" content="__CSRF_TOKEN__" />
    <title>Release Notes Dashboard</title>
    <style>
      body { margin: 0; font-family: system-ui, sans-serif; background: #f4f6fa; color: #1f2933; }
      header { padding: 2rem 2.5rem 1rem; }
      header h1 { margin: 0 0 1rem; }
      #search { width: 100%; max-width: 40rem; padding: 0.55rem 0.8rem; border-radius: 0.65rem; border: 1px solid #d6dae5; }
      .stats { display: flex; gap: 1rem; padding: 0 2.5rem 1rem; flex-wrap: wrap; }
      .stat { background: #fff; border-radius: 0.8rem; padding: 0.8rem 1.2rem; min-width: 8rem; }
      .stat strong { display: block; font-size: 1.6rem; }
      #releases { display: grid; grid-template-columns: repeat(auto-fill, minmax(22rem, 1fr)); gap: 1.2rem; padding: 0 2.5rem 2.5rem; }
      .card { background: #fff; border-radius: 1rem; padding: 1.2rem 1.4rem; box-shadow: 0 8px 24px rgba(15, 23, 42, 0.08); }
      .meta { display: flex; justify-content: space-between; font-size: 0.85rem; color: #52606d; }
      .main { font-weight: 600; margin: 0.8rem 0; }
      .detail { color: #3e4c59; line-height: 1.5; word-break: break-word; }
      .replies { border-left: 3px solid #d6dae5; margin-top: 0.8rem; padding-left: 0.8rem; font-size: 0.9rem; }
      .resources a { color: #2563eb; }
      #error { color: #b91c1c; padding: 0 2.5rem; }
    </style>
  </head>
  <body>
    <header>
      <h1>Release Notes</h1>
      <input id="search" type="text" placeholder="Search releases..." />
    </header>
    <p id="error"></p>
    <section class="stats" id="stats"></section>
    <main id="releases"><p>Loading release notes...</p></main>
    <script>
      const csrfToken = document.querySelector('meta[name="release-notes-csrf"]').content;
      const searchBox = document.getElementById("search");
      let stages = [];
      let debounce = null;

      function el(tag, className, text) {
        const node = document.createElement(tag);
        if (className) node.className = className;
        if (text) node.textContent = text;
        return node;
      }

      function renderStats(stats) {
        const container = document.getElementById("stats");
        container.replaceChildren();
        const cards = [["Releases", stats.total], ["With discussion", stats.withReplies], ["Links", stats.links]];
        for (const [label, value] of cards) {
          const card = el("div", "stat", label);
          const number = el("strong", null, String(value));
          card.prepend(number);
          container.append(card);
        }
      }

      function renderMessage(container, message) {
        const main = el("div", "main");
        main.innerHTML = message.mainHtml;
        container.append(main);
        if (message.detailHtml) {
          const detail = el("div", "detail");
          detail.innerHTML = message.detailHtml;
          container.append(detail);
        }
      }

      function stageSelect(release) {
        const select = el("select");
        for (const option of ["", ...stages]) {
          const node = el("option", null, option || "Unstaged");
          node.value = option;
          if ((release.stage || "") === option) node.selected = true;
          select.append(node);
        }
        select.addEventListener("change", async () => {
          await fetch("/api/stage", {
            method: "POST",
            headers: { "Content-Type": "application/json", "X-Release-Notes-CSRF": csrfToken },
            body: JSON.stringify({ occurredAt: release.key, stage: select.value }),
          });
          load();
        });
        return select;
      }

      function renderRelease(release) {
        const card = el("article", "card");
        const meta = el("div", "meta");
        meta.append(el("span", null, release.parent.sender), el("span", null, release.parent.displayTime));
        card.append(meta);
        renderMessage(card, release.parent);

        if (release.replies.length) {
          const replies = el("div", "replies");
          for (const reply of release.replies) {
            replies.append(el("div", "meta", reply.sender + " - " + reply.displayTime));
            renderMessage(replies, reply);
          }
          card.append(replies);
        }

        const resources = [...release.links];
        if (release.parent.attachmentUrl) resources.push({ url: release.parent.attachmentUrl, label: "View Screenshot" });
        if (release.parent.externalUrl) resources.push({ url: release.parent.externalUrl, label: "View in Slack" });
        if (resources.length) {
          const list = el("ul", "resources");
          for (const link of resources) {
            const item = el("li");
            const anchor = el("a", null, link.label);
            anchor.href = link.url;
            anchor.target = "_blank";
            anchor.rel = "noopener noreferrer";
            item.append(anchor);
            list.append(item);
          }
          card.append(el("h4", null, "Resources:"), list);
        }

        card.append(stageSelect(release));
        return card;
      }

      async function load() {
        const query = encodeURIComponent(searchBox.value);
        const response = await fetch("/api/releases?q=" + query);
        const data = await response.json();
        stages = data.stages;
        document.getElementById("error").textContent = data.error || "";
        renderStats(data.stats);
        const container = document.getElementById("releases");
        container.replaceChildren(...data.releases.map(renderRelease));
      }

      searchBox.addEventListener("input", () => {
        clearTimeout(debounce);
        debounce = setTimeout(load, 200);
      });

      const events = new EventSource("/api/events");
      events.onmessage = (event) => {
        const payload = JSON.parse(event.data);
        if (payload.type.startsWith("releases:")) load();
      };

      load();
    </script>
  </body>
</html>
"""


@app.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    """Render the dashboard page."""

    html = INDEX_HTML.replace("__CSRF_TOKEN__", CSRF_TOKEN)
    return HTMLResponse(content=html)


@app.get("/api/releases")
async def get_releases(q: str | None = None) -> JSONResponse:
    """Return the current release threads, optionally filtered by a search term."""

    payload = _build_payload(q)
    return JSONResponse(payload)


@app.post("/api/refresh")
async def refresh_releases(request: Request) -> JSONResponse:
    """Re-fetch the sheet immediately."""

    _require_authorized_post(request)

    config = load_config()
    if not config.sheet_url:
        raise HTTPException(status_code=400, detail="No sheet URL configured")

    _store.assembler = _build_assembler(config)
    client = _get_client(config)
    rows = await asyncio.to_thread(client.fetch_rows)
    changed = _store.refresh(rows)
    thread_count = len(_store.threads)
    if changed:
        _coordinator.trigger_refresh(client.url, reason="manual", thread_count=thread_count)

    return JSONResponse({"status": "ok", "changed": changed, "threads": thread_count})


@app.post("/api/stage")
async def update_stage(payload: Dict[str, Any], request: Request) -> JSONResponse:
    """Reassign a release's stage for this session only."""

    _require_authorized_post(request)

    key = payload.get("occurredAt")
    stage = payload.get("stage")
    if not key or not isinstance(key, str):
        raise HTTPException(status_code=400, detail="occurredAt is required")
    if stage is not None and not isinstance(stage, str):
        raise HTTPException(status_code=400, detail="stage must be a string")

    config = load_config()
    stage = (stage or "").strip() or None
    if stage is not None and stage not in config.stages:
        raise HTTPException(status_code=400, detail=f"Unknown stage: {stage}")

    if not _store.set_stage(key, stage):
        raise HTTPException(status_code=404, detail="Release not found")

    _coordinator.announce_stage(key, stage)
    thread = _store.get(key)
    return JSONResponse({"status": "ok", "release": _serialize_thread(thread)})


@app.get("/api/events")
async def events_stream(request: Request) -> StreamingResponse:
    """Server-Sent Events stream for real-time updates."""

    async def event_generator() -> AsyncGenerator[str, None]:
        try:
            async for event in _coordinator.subscribe():
                if await request.is_disconnected():
                    break

                yield f"data: {json.dumps(event)}\n\n"

        except asyncio.CancelledError:
            logger.info("SSE client disconnected")
            raise

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@app.get("/api/health")
async def health_check() -> JSONResponse:
    """Health check endpoint with poller status."""

    poller_stats = [poller.get_stats() for poller in _pollers]
    return JSONResponse(_build_health_response(poller_stats, _coordinator.get_stats()))


@app.on_event("startup")
async def startup_event():
    """Start polling the sheet if one is configured."""
    config = load_config()
    _store.assembler = _build_assembler(config)

    if not config.sheet_url:
        logger.warning("No sheet URL configured; auto-refresh disabled")
        return

    client = SheetClient(config.sheet_url, timeout=config.request_timeout)
    poller = SheetPoller(
        client=client,
        store=_store,
        interval=config.refresh_interval,
        coordinator=_coordinator,
    )
    try:
        await poller.start()
        _pollers.append(poller)
    except Exception as e:
        logger.error(f"Failed to start poller for {config.sheet_url}: {e}")

    logger.info(f"Auto-refresh initialized with {len(_pollers)} poller(s)")


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up polling services on shutdown."""
    logger.info(f"Stopping {len(_pollers)} poller(s)...")

    for poller in _pollers:
        try:
            await poller.stop()
        except Exception as e:
            logger.error(f"Error stopping poller {poller.client.url}: {e}")

    _pollers.clear()
    logger.info("Auto-refresh shutdown complete")


def run() -> None:
    """Convenience entry point for running with `python -m`."""

    import uvicorn

    uvicorn.run(
        "release_notes_dashboard.local_app:app",
        host="127.0.0.1",
        port=8080,
        reload=True,
    )


if __name__ == "__main__":
    run()
