"""Report duplicates, field completeness and suspicious entries across snapshots."""

import argparse
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from dermclinics.core.config import get_settings
from dermclinics.etl.classify import candidate_text, has_exclude_term
from dermclinics.etl.snapshot import iter_snapshots

logger = logging.getLogger(__name__)

COMPLETENESS_FIELDS = (
    "rating",
    "phone",
    "website",
    "opening_hours",
    "accessibility_options",
    "parking_options",
)


@dataclass
class SnapshotStats:
    label: str
    total: int
    filled: Dict[str, int]


@dataclass
class AuditReport:
    total: int = 0
    unique_ids: int = 0
    # (place_id, display_name, file name) for every repeat occurrence
    duplicates: List[Tuple[str, str, str]] = field(default_factory=list)
    suspicious: List[Tuple[str, str]] = field(default_factory=list)
    snapshots: List[SnapshotStats] = field(default_factory=list)


def audit_snapshots(out_dir: str) -> AuditReport:
    report = AuditReport()
    seen = set()
    for path, payload in iter_snapshots(out_dir):
        label = payload.get("state_code") or path.stem.upper()
        clinics = payload.get("clinics") or []
        report.snapshots.append(
            SnapshotStats(
                label=label,
                total=len(clinics),
                filled={name: sum(1 for c in clinics if c.get(name)) for name in COMPLETENESS_FIELDS},
            )
        )
        for clinic in clinics:
            report.total += 1
            place_id = clinic.get("place_id")
            name = clinic.get("display_name") or ""
            if place_id in seen:
                report.duplicates.append((place_id, name, path.name))
            else:
                seen.add(place_id)
            text = candidate_text({"displayName": {"text": name}, "websiteUri": clinic.get("website")})
            if has_exclude_term(text):
                report.suspicious.append((label, name))
    report.unique_ids = len(seen)
    return report


def _percent(part: int, whole: int) -> int:
    return round(part * 100 / whole) if whole else 0


def log_report(report: AuditReport) -> None:
    for stats in report.snapshots:
        logger.info("%s: %d clinics", stats.label, stats.total)
        for name, count in stats.filled.items():
            logger.info("  %s: %d/%d (%d%%)", name, count, stats.total, _percent(count, stats.total))
    logger.info("Total clinics in files: %d | unique place_ids: %d", report.total, report.unique_ids)
    if report.duplicates:
        logger.warning("Duplicates: %d", len(report.duplicates))
        for place_id, name, file_name in report.duplicates:
            logger.warning("  - %s (%s) in %s", name, place_id, file_name)
    if report.suspicious:
        logger.warning("Potential non-derm clinics: %d", len(report.suspicious))
        for label, name in report.suspicious:
            logger.warning("  - %s: %s", label, name)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = argparse.ArgumentParser(description="Audit clinic snapshot files")
    parser.add_argument("--out-dir", dest="out_dir", help="Snapshot directory")
    args = parser.parse_args(argv)

    report = audit_snapshots(args.out_dir or get_settings().output_dir)
    log_report(report)
    return 1 if report.duplicates else 0


if __name__ == "__main__":
    raise SystemExit(main())
