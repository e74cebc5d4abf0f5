"""Sequential orchestration of place discovery, contact search, extraction and resolution.

Per place the pipeline moves through::

    Pending -> SourceSearching -> Extracting -> (Resolving)? -> Merged -> Emitted

with any failure absorbed into an errored LeadRecord. Cancellation is only
observed at the top of the per-place loop: a place already in flight always
completes.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from leadfinder.core.config import Settings
from leadfinder.core.contact_extractor import ContactExtractor, summarize_signals
from leadfinder.core.locale_rules import LocaleRules, get_locale_rules
from leadfinder.core.progress import CancellationToken, LoggingObserver, ProgressChannel, ProgressEvent
from leadfinder.etl.transform import primary_category
from leadfinder.models import (
    NO_EMAIL,
    NOT_AVAILABLE,
    ExtractedSignals,
    LeadRecord,
    Place,
    RawSearchHit,
    ResolvedLead,
    SearchRequest,
    SourceOutcome,
)
from leadfinder.pipeline.contact_search import ContactSourceSearch, dedupe_hits
from leadfinder.pipeline.field_resolver import FieldResolver, FieldResolverError
from leadfinder.pipeline.place_finder import PlaceFinder
from leadfinder.vendors.google_places import GooglePlacesError, InvalidCredentialsError, QuotaExceededError
from leadfinder.vendors.openai_chat import ChatCompletionClient
from leadfinder.vendors.serp_search import SerpSearchProvider
from leadfinder.vendors.web_search import WebSearchProvider

logger = logging.getLogger(__name__)

ERROR_PHASE = "Error"
PROVIDER_LABELS = {"premium": "premium API", "basic": "basic fallback"}

MSG_INVALID_KEY = "คีย์ Google Maps API ไม่ถูกต้องหรือถูกจำกัดสิทธิ์ ไม่สามารถค้นหาสถานที่ได้"
MSG_QUOTA = "โควต้า Google Maps API เต็มแล้ว กรุณาลองใหม่ภายหลัง"
MSG_PLACES_FAILED = "ค้นหาสถานที่จาก Google Maps ไม่สำเร็จ: {reason}"
MSG_NO_PLACES = "ไม่พบสถานที่ในพื้นที่ที่กำหนด กรุณาลองเปลี่ยนคำค้นหาหรือขยายรัศมี"
MSG_PLACES_FOUND = "พบสถานที่ {count} แห่ง กำลังเริ่มค้นหาข้อมูลผู้ติดต่อ ({mode})..."
MSG_PROCESSING = "กำลังประมวลผล {name} ({index}/{total})"
MSG_STOPPED = "การค้นหาถูกหยุดโดยผู้ใช้"
MSG_DONE = "ค้นหาเสร็จสิ้น พบผลลัพธ์ {count} รายการ (มีอีเมล {emails} รายการ)"
MSG_DONE_STOPPED = "หยุดการค้นหาแล้ว ได้ผลลัพธ์ {count} รายการ"

LeadSink = Callable[[LeadRecord, "PipelineRun"], None]


class SourceSearchFailed(RuntimeError):
    """Every contact-source provider failed for a place."""


@dataclass
class PipelineRun:
    request: SearchRequest
    search_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    records: List[LeadRecord] = field(default_factory=list)
    token: CancellationToken = field(default_factory=CancellationToken)
    finished: bool = False

    def stop(self) -> None:
        self.token.cancel()

    @property
    def stop_requested(self) -> bool:
        return self.token.cancelled


def _short(exc: BaseException, limit: int = 120) -> str:
    text = str(exc) or exc.__class__.__name__
    return text if len(text) <= limit else f"{text[:limit]}..."


def _pick(primary: Optional[str], fallback: str, sentinel: str) -> str:
    if primary and primary != sentinel:
        return primary
    return fallback or sentinel


class LeadPipeline:
    """Drive one lead search from place discovery to emitted LeadRecords."""

    def __init__(
        self,
        settings: Settings,
        *,
        place_finder: Optional[PlaceFinder] = None,
        premium_search: Optional[ContactSourceSearch] = None,
        basic_search: Optional[ContactSourceSearch] = None,
        extractor: Optional[ContactExtractor] = None,
        resolver: Optional[FieldResolver] = None,
        channel: Optional[ProgressChannel] = None,
        sink: Optional[LeadSink] = None,
        rules: Optional[LocaleRules] = None,
        verify_premium: bool = True,
        retry_unverified_premium: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.rules = rules or get_locale_rules(settings.search_locale)
        self._sleep = sleep
        self._clock = clock
        self.sink = sink
        self.run: Optional[PipelineRun] = None

        self.channel = channel or ProgressChannel()
        self.place_finder = place_finder or PlaceFinder(
            settings.google_api_key,
            page_token_delay=settings.page_token_delay_seconds,
            sleep=sleep,
        )
        self.premium_search = premium_search or self._default_premium_search()
        self.basic_search = basic_search or ContactSourceSearch(
            WebSearchProvider(proxy_url=settings.basic_search_proxy_url),
            rules=self.rules,
            query_delay=settings.query_delay_seconds,
            sleep=sleep,
        )
        self.extractor = extractor or ContactExtractor(self.rules)
        self.resolver = resolver or self._default_resolver()

        self.premium_verified: Optional[bool] = None
        if self.premium_search is not None and verify_premium:
            self._verify_premium(retry_unverified_premium)

    def _default_premium_search(self) -> Optional[ContactSourceSearch]:
        if not self.settings.premium_enabled:
            logger.info("SerpAPI key not configured; contact search will use the basic fallback")
            return None
        provider = SerpSearchProvider(
            self.settings.serpapi_api_key,
            language=self.rules.language,
            country=self.rules.country,
            sleep=self._sleep,
        )
        return ContactSourceSearch(
            provider,
            rules=self.rules,
            query_delay=self.settings.query_delay_seconds,
            sleep=self._sleep,
        )

    def _default_resolver(self) -> Optional[FieldResolver]:
        if not self.settings.resolver_enabled:
            return None
        client = ChatCompletionClient(
            self.settings.openai_api_key,
            base_url=self.settings.openai_base_url,
            model=self.settings.openai_model,
        )
        return FieldResolver(client, rules=self.rules)

    def _verify_premium(self, retry_unverified: bool) -> None:
        check = getattr(self.premium_search.provider, "check_credentials", None)
        if check is None:
            return
        valid, reason = check()
        self.premium_verified = valid
        if valid:
            logger.info("Premium search credentials verified")
            return
        if retry_unverified:
            logger.warning("Premium search credential check failed (%s); will still try it per place", reason)
            return
        logger.warning("Premium search credential check failed (%s); using basic fallback for this run", reason)
        self.premium_search = None

    @property
    def premium_enabled(self) -> bool:
        return self.premium_search is not None

    # ---------- Run lifecycle ----------

    def create_run(self, request: SearchRequest) -> PipelineRun:
        if self.run is not None:
            raise RuntimeError("A LeadPipeline drives a single run")
        self.run = PipelineRun(request=request)
        self.channel.subscribe(LoggingObserver(self.run.search_id))
        return self.run

    def stop(self) -> None:
        """Request a cooperative stop; takes effect before the next place starts."""
        if self.run is not None:
            self.run.stop()

    def find_leads(self, request: SearchRequest) -> List[LeadRecord]:
        return self.execute(self.create_run(request))

    def emit(self, event: ProgressEvent) -> None:
        self.channel.emit(event)

    def execute(self, run: PipelineRun) -> List[LeadRecord]:
        request = run.request
        logger.info(
            "Starting lead search %s keywords=%s location=%s radius=%sm limit=%d premium=%s",
            run.search_id,
            request.keywords,
            request.location.as_param(),
            request.radius_meters,
            request.result_limit,
            self.premium_enabled,
        )

        try:
            places = self.place_finder.find_places(
                request.keywords,
                request.location,
                request.radius_meters,
                request.result_limit,
            )
        except InvalidCredentialsError as exc:
            logger.error("Places search rejected the credentials: %s", exc)
            return self._finish_early(run, MSG_INVALID_KEY)
        except QuotaExceededError as exc:
            logger.error("Places search quota exceeded: %s", exc)
            return self._finish_early(run, MSG_QUOTA)
        except GooglePlacesError as exc:
            logger.error("Places search failed: %s", exc)
            return self._finish_early(run, MSG_PLACES_FAILED.format(reason=_short(exc)))

        if not places:
            logger.warning("No places found for search %s", run.search_id)
            return self._finish_early(run, MSG_NO_PLACES)

        mode = PROVIDER_LABELS["premium" if self.premium_enabled else "basic"]
        self.emit(ProgressEvent.status(MSG_PLACES_FOUND.format(count=len(places), mode=mode)))

        stopped = False
        for index, place in enumerate(places):
            if run.stop_requested:
                logger.info("Search %s stopped after %d/%d places", run.search_id, index, len(places))
                self.emit(ProgressEvent.stopped(MSG_STOPPED))
                stopped = True
                break

            self.emit(ProgressEvent.status(MSG_PROCESSING.format(name=place.name, index=index + 1, total=len(places))))
            record = self.process_place(place, request)
            run.records.append(record)
            self.emit(ProgressEvent.result(record))
            self._persist(record, run)

            if index < len(places) - 1 and not run.stop_requested:
                self._sleep(self.settings.place_delay_seconds)

        run.finished = True
        count = len(run.records)
        if stopped:
            self.emit(ProgressEvent.status(MSG_DONE_STOPPED.format(count=count)))
        else:
            emails = sum(1 for record in run.records if record.email != NO_EMAIL)
            self.emit(ProgressEvent.status(MSG_DONE.format(count=count, emails=emails)))
        logger.info(
            "Search %s finished: results=%d errors=%d stopped=%s",
            run.search_id,
            count,
            sum(1 for record in run.records if record.search_phase == ERROR_PHASE),
            stopped,
        )
        return list(run.records)

    def _finish_early(self, run: PipelineRun, message: str) -> List[LeadRecord]:
        run.finished = True
        self.emit(ProgressEvent.status(message))
        return []

    def _persist(self, record: LeadRecord, run: PipelineRun) -> None:
        if self.sink is None:
            return
        try:
            self.sink(record, run)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to persist lead for %s", record.company_name)

    # ---------- Per-place state machine ----------

    def process_place(self, place: Place, request: SearchRequest) -> LeadRecord:
        started = self._clock()
        logger.info("Processing place %s (%s) %s", place.name, primary_category(place) or "-", place.address)
        try:
            outcome = self.search_sources(place, request, started)
            if not outcome.ok:
                raise SourceSearchFailed(outcome.error)

            signals = self.extractor.extract(outcome.hits, place.name)
            if outcome.provider == "premium" and self._deep_search_allowed(started) and signals.names and not signals.emails:
                outcome, signals = self._search_first_person(place, outcome, signals)

            resolved = self.resolve_fields(signals, request, place, started)
            return self.merge(place, outcome, signals, resolved)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error processing place %s: %s", place.name, exc)
            return LeadRecord.errored(place.name)

    def search_sources(self, place: Place, request: SearchRequest, started: float) -> SourceOutcome:
        """Premium first when available; any premium failure degrades this place to basic."""
        if self.premium_search is not None:
            try:
                hits = self.premium_search.search_for_business(place.name, "contact")
                if self._deep_search_allowed(started) and self.rules.is_company_keyword(request.keywords):
                    hits = self._with_registry_hits(place, hits)
                return SourceOutcome.success(self.premium_search.provider_name, hits)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Premium search failed for %s, falling back to basic: %s", place.name, exc)

        try:
            hits = self.basic_search.search_for_business(place.name, "contact")
        except Exception as exc:  # noqa: BLE001
            logger.error("Basic search failed for %s: %s", place.name, exc)
            return SourceOutcome.failure(self.basic_search.provider_name, _short(exc))
        return SourceOutcome.success(self.basic_search.provider_name, hits)

    def _with_registry_hits(self, place: Place, hits: List[RawSearchHit]) -> List[RawSearchHit]:
        try:
            registry_hits = self.premium_search.search_for_directors_via_registry(place.name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Registry director search failed for %s: %s", place.name, exc)
            return hits
        return dedupe_hits([*hits, *registry_hits])

    def _search_first_person(
        self,
        place: Place,
        outcome: SourceOutcome,
        signals: ExtractedSignals,
    ) -> Tuple[SourceOutcome, ExtractedSignals]:
        person = signals.names[0]
        try:
            person_hits = self.premium_search.search_for_person(person, place.name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Person search for %s at %s failed: %s", person, place.name, exc)
            return outcome, signals
        merged = SourceOutcome.success(outcome.provider, dedupe_hits([*outcome.hits, *person_hits]))
        return merged, self.extractor.extract(merged.hits, place.name)

    def _deep_search_allowed(self, started: float) -> bool:
        return self.settings.deep_search and self.premium_search is not None and self._within_budget(started)

    def _within_budget(self, started: float) -> bool:
        budget = self.settings.place_time_budget_seconds
        if budget is None:
            return True
        within = (self._clock() - started) < budget
        if not within:
            logger.info("Per-place time budget of %.1fs exhausted; skipping optional stages", budget)
        return within

    def resolve_fields(
        self,
        signals: ExtractedSignals,
        request: SearchRequest,
        place: Place,
        started: float,
    ) -> Optional[ResolvedLead]:
        if self.resolver is None:
            return None
        if len(signals.raw_text) <= self.settings.resolver_min_text_length:
            logger.debug("Evidence for %s too short (%d chars); skipping resolver", place.name, len(signals.raw_text))
            return None
        if not self._within_budget(started):
            return None
        try:
            return self.resolver.resolve(signals.raw_text, request.target_titles, place.name)
        except FieldResolverError as exc:
            logger.warning("Field resolver failed for %s, using direct extraction: %s", place.name, exc)
            return None

    def merge(
        self,
        place: Place,
        outcome: SourceOutcome,
        signals: ExtractedSignals,
        resolved: Optional[ResolvedLead],
    ) -> LeadRecord:
        label = PROVIDER_LABELS.get(outcome.provider, outcome.provider)
        sources = len(outcome.hits)
        if resolved is not None:
            phase = f"{label} + AI resolver ({sources} sources)"
        elif outcome.provider == "premium":
            phase = f"{label} direct ({sources} sources)"
        else:
            phase = f"{label} ({sources} sources)"

        resolved = resolved or ResolvedLead()
        if signals.websites:
            target_url = signals.websites[0]
        elif outcome.hits and outcome.hits[0].url:
            target_url = outcome.hits[0].url
        else:
            target_url = NOT_AVAILABLE

        n_emails, n_phones, n_names, n_sites = summarize_signals(signals)
        logger.debug(
            "Merging %s: emails=%d phones=%d names=%d websites=%d confidence=%d",
            place.name,
            n_emails,
            n_phones,
            n_names,
            n_sites,
            resolved.confidence,
        )
        return LeadRecord(
            company_name=place.name,
            lead_name=_pick(resolved.lead_name, signals.first_name(), NOT_AVAILABLE),
            lead_title=_pick(resolved.lead_title, "", NOT_AVAILABLE),
            email=_pick(resolved.email, signals.first_email(), NO_EMAIL),
            phone=_pick(resolved.phone, signals.first_phone(), NOT_AVAILABLE),
            search_phase=phase,
            target_url=target_url,
            search_step=1,
        )
