"""CLI job that discovers dermatology clinics and commits them per jurisdiction."""

import argparse
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

import requests

from dermclinics.core.config import BoundsTuple, ConfigError, Settings, get_settings, parse_bounds, parse_states
from dermclinics.core.db import ensure_schema, upsert_clinics
from dermclinics.core.throttle import RequestBudgetExceeded, RequestGateway
from dermclinics.etl.classify import accept_candidate
from dermclinics.etl.collector import ClinicCollector
from dermclinics.etl.snapshot import snapshot_is_fresh, snapshot_path, write_snapshot
from dermclinics.etl.transform import to_clinic
from dermclinics.jobs.strategies import Bounds, grid_cells, iter_grid_pages, iter_text_pages, text_queries
from dermclinics.models import Clinic
from dermclinics.vendors.google_places import GooglePlacesError

logger = logging.getLogger(__name__)

CommitFn = Callable[[str, List[Clinic]], None]
Pages = Iterator[List[Dict[str, Any]]]


@dataclass
class RunSummary:
    requests: int = 0
    clinics: int = 0
    estimated_cost: float = 0.0
    committed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    stopped_reason: Optional[str] = None


def build_gateway(settings: Settings, sleep: Callable[[float], None] = time.sleep) -> RequestGateway:
    return RequestGateway(
        settings.qps,
        max_retries=settings.max_retries,
        max_requests=settings.max_requests,
        cost_per_request=settings.cost_per_request,
        sleep=sleep,
    )


def make_committer(out_dir: str, use_db: bool) -> CommitFn:
    """Snapshot file always; database upsert when configured."""

    def commit(label: str, clinics: List[Clinic]) -> None:
        write_snapshot(out_dir, label, clinics)
        if use_db:
            upsert_clinics(clinics)

    return commit


class CollectionRun:
    """One pass over jurisdictions and grid boxes sharing a gateway and dedup state."""

    def __init__(
        self,
        settings: Settings,
        gateway: RequestGateway,
        commit: CommitFn,
        sleep: Callable[[float], None] = time.sleep,
        today: Optional[date] = None,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.commit = commit
        self.sleep = sleep
        self.today = today or date.today()
        self.committed = ClinicCollector()
        self.summary = RunSummary()
        self._global_cap_hit = False

    def _text_pages(self, jurisdiction: str) -> Pages:
        for query in text_queries(jurisdiction):
            yield from iter_text_pages(
                self.gateway,
                self.settings.google_api_key,
                query,
                max_pages=self.settings.max_pages_per_query,
                page_delay=self.settings.next_page_delay_ms / 1000.0,
                sleep=self.sleep,
            )

    def _grid_pages(self, label: str, bounds: Bounds) -> Pages:
        cells = grid_cells(bounds, self.settings.grid_step_deg, self.settings.grid_radius_m, label)
        logger.info("Grid %s: %d cells", label, len(cells))
        return iter_grid_pages(self.gateway, self.settings.google_api_key, cells)

    def _accept(self, place: Dict[str, Any]) -> Optional[Clinic]:
        try:
            if not accept_candidate(place):
                return None
            return to_clinic(place, today=self.today)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Skipping candidate %s: %s", place.get("id") if isinstance(place, dict) else place, exc)
            return None

    def _ingest(self, places: Iterable[Dict[str, Any]], collector: ClinicCollector) -> bool:
        """Add a page of candidates; True when a cap says this collection should stop."""
        max_state = self.settings.max_clinics_per_state
        max_global = self.settings.max_clinics_global
        for place in places:
            clinic = self._accept(place)
            if clinic is None or not collector.add(clinic):
                continue
            if max_global and len(self.committed) + len(collector) >= max_global:
                logger.info("Global clinic cap of %d reached", max_global)
                self._global_cap_hit = True
                return True
            if max_state and len(collector) >= max_state:
                logger.info("Per-jurisdiction cap of %d reached", max_state)
                return True
        return False

    def collect(self, pages: Pages) -> ClinicCollector:
        collector = ClinicCollector(exclude=self.committed.ids)
        try:
            for places in pages:
                if self._ingest(places, collector):
                    break
        finally:
            close = getattr(pages, "close", None)
            if close is not None:
                close()
        return collector

    def _process(self, label: str, pages: Pages) -> bool:
        """Collect and commit one target; False when the whole run must stop."""
        logger.info("→ %s", label)
        try:
            collector = self.collect(pages)
        except RequestBudgetExceeded as exc:
            logger.warning("%s: %s; stopping collection without committing it", label, exc)
            self.summary.stopped_reason = "request_cap"
            return False
        except (GooglePlacesError, requests.RequestException) as exc:
            logger.error("%s: query failed: %s", label, exc)
            self.summary.failed.append(label)
            return True

        clinics = collector.sorted_clinics()
        try:
            self.commit(label, clinics)
        except Exception as exc:  # noqa: BLE001
            logger.error("%s: failed to commit %d clinics: %s", label, len(clinics), exc)
            self.summary.failed.append(label)
            if self._global_cap_hit:
                self.summary.stopped_reason = "clinic_cap"
                return False
            return True

        self.committed.merge(collector)
        self.summary.committed.append(label)
        logger.info(
            "%s: %d clinics | progress: %d requests, ~$%.2f",
            label,
            len(clinics),
            self.gateway.request_count,
            self.gateway.estimated_cost(),
        )
        if self._global_cap_hit:
            self.summary.stopped_reason = "clinic_cap"
            return False
        return True

    def run(
        self,
        jurisdictions: Sequence[str],
        grid_bounds: Sequence[BoundsTuple] = (),
        skip_fresh: bool = False,
    ) -> RunSummary:
        targets = []
        for jurisdiction in jurisdictions:
            targets.append((jurisdiction, lambda j=jurisdiction: self._text_pages(j)))
        for index, bounds in enumerate(grid_bounds, start=1):
            label = f"grid-{index}"
            targets.append((label, lambda b=bounds, name=label: self._grid_pages(name, Bounds.from_tuple(b))))

        for label, pages in targets:
            if skip_fresh and snapshot_is_fresh(snapshot_path(self.settings.output_dir, label), self.today):
                logger.info("%s: snapshot is still fresh, skipping", label)
                self.summary.skipped.append(label)
                continue
            if not self._process(label, pages()):
                logger.info("Limit reached. Stopping collection.")
                break

        self.summary.requests = self.gateway.request_count
        self.summary.clinics = len(self.committed)
        self.summary.estimated_cost = self.gateway.estimated_cost()
        return self.summary


def run_collection(
    settings: Settings,
    jurisdictions: Optional[Sequence[str]] = None,
    grid_bounds: Optional[Sequence[BoundsTuple]] = None,
    *,
    gateway: Optional[RequestGateway] = None,
    commit: Optional[CommitFn] = None,
    use_db: bool = True,
    skip_fresh: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    today: Optional[date] = None,
) -> RunSummary:
    if not settings.google_api_key:
        raise ConfigError("GOOGLE_PLACES_API_KEY is required")
    if settings.grid_step_deg <= 0:
        raise ConfigError("grid step must be positive")

    if jurisdictions is None:
        jurisdictions = settings.states
    if grid_bounds is None:
        grid_bounds = settings.grid_bounds
    if commit is None:
        use_db = use_db and bool(settings.database_url)
        if use_db:
            ensure_schema()
        commit = make_committer(settings.output_dir, use_db)

    gateway = gateway or build_gateway(settings, sleep=sleep)
    logger.info(
        "Collecting dermatology clinics for %d jurisdiction(s) and %d grid box(es)",
        len(jurisdictions),
        len(grid_bounds),
    )
    logger.info(
        "Rate: ~%s QPS | nextPageDelay=%dms | max requests: %s",
        settings.qps,
        settings.next_page_delay_ms,
        settings.max_requests or "unlimited",
    )

    summary = CollectionRun(settings, gateway, commit, sleep=sleep, today=today).run(
        jurisdictions, grid_bounds, skip_fresh=skip_fresh
    )
    logger.info(
        "Done. Total API calls: %d | Total clinics: %d | Cost: ~$%.2f | committed=%d failed=%d skipped=%d",
        summary.requests,
        summary.clinics,
        summary.estimated_cost,
        len(summary.committed),
        len(summary.failed),
        len(summary.skipped),
    )
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Collect dermatology clinics from Google Places")
    parser.add_argument("--states", dest="states", help="Comma separated jurisdictions, e.g. TX,CA")
    parser.add_argument(
        "--grid",
        dest="grid",
        action="append",
        default=[],
        help="Bounding box minLat,maxLat,minLng,maxLng to sweep (repeatable)",
    )
    parser.add_argument("--step", dest="step", type=float, help="Grid step in degrees")
    parser.add_argument("--radius", dest="radius", type=float, help="Grid search radius in meters")
    parser.add_argument("--out-dir", dest="out_dir", help="Directory for per-jurisdiction snapshots")
    parser.add_argument("--skip-fresh", dest="skip_fresh", action="store_true", help="Skip fresh snapshots")
    parser.add_argument("--no-db", dest="no_db", action="store_true", help="Only write snapshot files")
    return parser


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.step is not None:
        overrides["grid_step_deg"] = args.step
    if args.radius is not None:
        overrides["grid_radius_m"] = args.radius
    if args.out_dir:
        overrides["output_dir"] = str(Path(args.out_dir))
    if not overrides:
        return settings
    return replace(settings, **overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    try:
        settings = _apply_overrides(get_settings(), args)
        states = parse_states(args.states)
        grid = [parse_bounds(raw) for raw in args.grid]
        if args.states is None and grid:
            jurisdictions: Sequence[str] = ()
        else:
            jurisdictions = states or settings.states
        run_collection(
            settings,
            jurisdictions,
            grid or settings.grid_bounds,
            use_db=not args.no_db,
            skip_fresh=args.skip_fresh,
        )
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
