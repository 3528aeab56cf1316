"""Per-jurisdiction JSON snapshot files (``data/clinics/<label>.json``)."""

import json
import logging
import os
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple, Union

from dermclinics.etl.transform import needs_refresh, with_display_defaults
from dermclinics.models import Clinic

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def snapshot_path(out_dir: PathLike, label: str) -> Path:
    return Path(out_dir) / f"{label.lower()}.json"


def write_snapshot(out_dir: PathLike, label: str, clinics: Sequence[Clinic]) -> Path:
    """Write the jurisdiction's clinics atomically and return the file path."""
    target = snapshot_path(out_dir, label)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "state": label,
        "state_code": label,
        "total": len(clinics),
        "last_updated": datetime.now(timezone.utc).isoformat(),
        "clinics": [with_display_defaults(clinic.to_dict()) for clinic in clinics],
    }

    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.stem}-", suffix=".json", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.info("Wrote %d clinics to %s", len(clinics), target)
    return target


def load_snapshot(path: PathLike) -> Dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as fh:
        return json.load(fh)


def iter_snapshots(out_dir: PathLike) -> Iterator[Tuple[Path, Dict[str, Any]]]:
    directory = Path(out_dir)
    if not directory.is_dir():
        return
    for path in sorted(directory.glob("*.json")):
        try:
            yield path, load_snapshot(path)
        except (OSError, ValueError) as exc:
            logger.error("Skipping unreadable snapshot %s: %s", path, exc)


def snapshot_is_fresh(path: PathLike, today: Optional[date] = None) -> bool:
    """True when the snapshot exists and its newest clinic is under 30 days old."""
    path = Path(path)
    if not path.exists():
        return False
    try:
        clinics = load_snapshot(path).get("clinics") or []
    except (OSError, ValueError) as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return False
    dates = [clinic.get("last_fetched_at") for clinic in clinics if clinic.get("last_fetched_at")]
    if not dates:
        return False
    return not needs_refresh(max(dates), today)
