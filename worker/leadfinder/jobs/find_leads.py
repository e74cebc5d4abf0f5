"""CLI job to find leads around a point and persist them."""

import argparse
import json
import logging
import sys
from typing import List, Optional, Sequence

from leadfinder.core.config import Settings, get_settings
from leadfinder.core.db import init_pool, make_lead_sink
from leadfinder.models import GeoPoint, LeadRecord, SearchRequest
from leadfinder.pipeline.lead_pipeline import LeadPipeline

logger = logging.getLogger(__name__)


def parse_titles(raw: str) -> List[str]:
    return [title.strip() for title in (raw or "").split(",") if title.strip()]


def run_find_leads_job(
    *,
    keywords: str,
    titles: Sequence[str],
    lat: float,
    lng: float,
    radius_km: float,
    limit: int,
    persist: bool = True,
    settings: Optional[Settings] = None,
) -> List[LeadRecord]:
    settings = settings or get_settings()
    if not settings.google_api_key:
        raise RuntimeError("GOOGLE_API_KEY is required")

    request = SearchRequest(
        keywords=keywords.strip(),
        target_titles=tuple(titles),
        location=GeoPoint(lat=lat, lng=lng),
        radius_meters=radius_km * 1000,
        result_limit=limit,
    )

    pipeline = LeadPipeline(settings)
    if persist and settings.database_url:
        init_pool(settings.database_url)
        pipeline.sink = make_lead_sink(premium_used=pipeline.premium_enabled)
    elif persist:
        logger.warning("DATABASE_URL missing; results will not be persisted")

    run = pipeline.create_run(request)
    logger.info("Assigned search_id=%s", run.search_id)
    try:
        return pipeline.execute(run)
    except KeyboardInterrupt:
        # Ctrl+C behaves like the stop button: the in-flight place is abandoned.
        logger.warning("Interrupted; returning %d leads collected so far", len(run.records))
        return list(run.records)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find decision-maker leads for nearby businesses")
    parser.add_argument("--keywords", required=True, help="Business keyword, e.g. 'ร้านกาแฟ'")
    parser.add_argument(
        "--titles",
        dest="titles",
        type=parse_titles,
        default=[],
        help="Comma separated target job titles, e.g. 'เจ้าของ,ผู้จัดการ'",
    )
    parser.add_argument("--lat", type=float, required=True, help="Latitude of the search centre")
    parser.add_argument("--lng", type=float, required=True, help="Longitude of the search centre")
    parser.add_argument("--radius-km", dest="radius_km", type=float, default=5.0, help="Search radius in km")
    parser.add_argument("--limit", type=int, default=20, help="Maximum number of places to process")
    parser.add_argument("--no-persist", dest="persist", action="store_false", help="Skip writing to the database")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    records = run_find_leads_job(
        keywords=args.keywords,
        titles=args.titles,
        lat=args.lat,
        lng=args.lng,
        radius_km=args.radius_km,
        limit=args.limit,
        persist=args.persist,
    )
    json.dump([record.to_dict() for record in records], sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
