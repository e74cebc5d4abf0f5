"""HTTP entrypoint that runs lead searches and streams their progress (Cloud Run friendly)."""

from __future__ import annotations

import dataclasses
import logging
import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, Response, jsonify, request, stream_with_context

from leadfinder.core.config import Settings, get_settings
from leadfinder.core.db import fetch_recent_leads, init_pool, make_lead_sink
from leadfinder.core.progress import END_OF_STREAM, ProgressEvent
from leadfinder.models import GeoPoint, SearchRequest
from leadfinder.pipeline.lead_pipeline import LeadPipeline, PipelineRun

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
MAX_CONCURRENT_SEARCHES = 4
_executor = ThreadPoolExecutor(max_workers=MAX_CONCURRENT_SEARCHES)
_active_runs: Dict[str, LeadPipeline] = {}
_active_lock = threading.Lock()

DEFAULT_LIMIT = 20
MAX_LIMIT = 60
KEY_HEADERS = {
    "X-Google-Maps-Key": "google_api_key",
    "X-OpenAI-Key": "openai_api_key",
    "X-SerpAPI-Key": "serpapi_api_key",
}
MSG_STARTING = "เริ่มต้นการค้นหา ({mode})..."
MSG_FATAL = "เกิดข้อผิดพลาดในการประมวลผล: {reason}"

# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    settings = get_settings()
    with _active_lock:
        active = len(_active_runs)
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "active_searches": active,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/find-leads")
def find_leads() -> Any:
    """
    Start a lead search and stream its progress as server-sent events.
    Required JSON fields: keywords, targetTitles, location{lat,lng}
    Optional: radiusKm or radiusMeters (default 5 km), limit (default 20)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    search_request, error = parse_search_request(payload)
    if error:
        return jsonify({"error": error}), 400

    settings = settings_for_request(get_settings(), request.headers)
    if not settings.google_api_key:
        return jsonify({"error": "server configuration error: Google Maps API key is required"}), 500

    with _active_lock:
        busy = len(_active_runs) >= MAX_CONCURRENT_SEARCHES
    if busy:
        # Every worker is taken; a queued stream would sit silent until one frees up.
        logger.warning("Rejecting lead search: %d searches already running", MAX_CONCURRENT_SEARCHES)
        return jsonify({"error": "too many searches in progress, try again shortly"}), 503

    pipeline = _build_pipeline(settings)
    run = pipeline.create_run(search_request)
    events: "queue.Queue[Optional[ProgressEvent]]" = queue.Queue()
    pipeline.channel.subscribe(events.put)

    with _active_lock:
        _active_runs[run.search_id] = pipeline

    logger.info("Queueing lead search %s: %s", run.search_id, search_request)
    _executor.submit(_run_pipeline_safe, pipeline, run, events)

    mode = "premium API" if pipeline.premium_enabled else "basic fallback"
    headers = {"Cache-Control": "no-cache", "X-Search-Id": run.search_id}
    return Response(
        stream_with_context(_stream_events(pipeline, run, events, MSG_STARTING.format(mode=mode))),
        mimetype="text/event-stream",
        headers=headers,
    )


@app.post("/find-leads/<search_id>/stop")
def stop_search(search_id: str) -> Any:
    with _active_lock:
        pipeline = _active_runs.get(search_id)
    if pipeline is None:
        return jsonify({"error": "search not found or already finished"}), 404
    pipeline.stop()
    logger.info("Stop requested for search %s", search_id)
    return jsonify({"data": {"search_id": search_id, "status": "stopping"}}), 202


@app.get("/leads/history")
def lead_history() -> Any:
    settings = get_settings()
    if not settings.database_url:
        return jsonify({"error": "database is not configured"}), 503

    try:
        limit = int(request.args.get("limit", 100))
        if limit <= 0:
            raise ValueError
    except (TypeError, ValueError):
        return jsonify({"error": "limit must be a positive integer"}), 400

    try:
        init_pool(settings.database_url)
        records = fetch_recent_leads(limit)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to load lead history: %s", exc)
        return jsonify({"error": "failed to load lead history"}), 500
    return jsonify({"data": [record.to_dict() for record in records]}), 200


# ---------- Internals ----------


def parse_search_request(payload: Dict[str, Any]) -> Tuple[Optional[SearchRequest], Optional[str]]:
    keywords = str(payload.get("keywords") or "").strip()
    titles_raw = payload.get("targetTitles")
    location = payload.get("location") or payload.get("selectedLocation")

    missing = [
        name
        for name, value in (("keywords", keywords), ("targetTitles", titles_raw), ("location", location))
        if not value
    ]
    if missing:
        return None, f"missing fields: {', '.join(missing)}"

    if isinstance(titles_raw, str):
        titles: List[str] = [t.strip() for t in titles_raw.split(",") if t.strip()]
    elif isinstance(titles_raw, list):
        titles = [str(t).strip() for t in titles_raw if str(t).strip()]
    else:
        return None, "targetTitles must be a list or comma separated string"

    try:
        point = GeoPoint(lat=float(location["lat"]), lng=float(location["lng"]))
    except (KeyError, TypeError, ValueError):
        return None, "location must contain numeric lat and lng"

    try:
        if payload.get("radiusMeters") is not None:
            radius_meters = float(payload["radiusMeters"])
        else:
            radius_meters = float(payload.get("radiusKm", payload.get("radius", 5))) * 1000
    except (TypeError, ValueError):
        return None, "radius must be numeric"

    try:
        limit = int(payload.get("limit", DEFAULT_LIMIT))
    except (TypeError, ValueError):
        return None, "limit must be numeric"
    if limit <= 0 or limit > MAX_LIMIT:
        return None, f"limit must be between 1 and {MAX_LIMIT}"

    try:
        search_request = SearchRequest(
            keywords=keywords,
            target_titles=tuple(titles),
            location=point,
            radius_meters=radius_meters,
            result_limit=limit,
        )
    except ValueError as exc:
        return None, str(exc)
    return search_request, None


def settings_for_request(settings: Settings, headers: Any) -> Settings:
    """Per-request API keys from headers take precedence over the environment."""
    overrides = {field: headers.get(header) for header, field in KEY_HEADERS.items() if headers.get(header)}
    if not overrides:
        return settings
    logger.info("Using request-supplied keys for: %s", ", ".join(sorted(overrides)))
    return dataclasses.replace(settings, **overrides)


def _build_pipeline(settings: Settings) -> LeadPipeline:
    pipeline = LeadPipeline(settings)
    if settings.database_url:
        try:
            init_pool(settings.database_url)
            pipeline.sink = make_lead_sink(premium_used=pipeline.premium_enabled)
        except Exception as exc:  # noqa: BLE001
            logger.error("Database unavailable, leads will not be persisted: %s", exc)
    return pipeline


def _run_pipeline_safe(
    pipeline: LeadPipeline,
    run: PipelineRun,
    events: "queue.Queue[Optional[ProgressEvent]]",
) -> None:
    try:
        pipeline.execute(run)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Lead search %s failed: %s", run.search_id, exc)
        events.put(ProgressEvent.error(MSG_FATAL.format(reason=str(exc)[:120])))
    finally:
        with _active_lock:
            _active_runs.pop(run.search_id, None)
        events.put(None)


def _stream_events(
    pipeline: LeadPipeline,
    run: PipelineRun,
    events: "queue.Queue[Optional[ProgressEvent]]",
    opening_message: str,
):
    completed = False
    try:
        yield ProgressEvent.status(opening_message).to_sse()
        while True:
            event = events.get()
            if event is None:
                completed = True
                break
            yield event.to_sse()
        yield END_OF_STREAM
    finally:
        if not completed:
            # Client went away; let the worker wind down after the current place.
            logger.info("Stream for search %s closed early; requesting stop", run.search_id)
            pipeline.stop()


def main() -> None:
    """Cloud Run injects PORT; fall back to WORKER_PORT for local runs."""
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port, threaded=True)


if __name__ == "__main__":
    main()
