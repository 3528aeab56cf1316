"""Download Places photo media for collected clinics.

Downloads run on a fixed-size thread pool and never go through the search
gateway.
"""

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

_MEDIA_URL = "https://places.googleapis.com/v1/{name}/media"
MAX_WORKERS = 5
REQUEST_TIMEOUT = 15
RETRY_STATUSES = (429, 500, 502, 503, 504)


def photo_filename(photo_name: str) -> str:
    """Stable file name for a photo reference (references are too long for paths)."""
    return hashlib.sha1(photo_name.encode("utf-8")).hexdigest() + ".jpg"


def build_session(total: int = 3, backoff_factor: float = 0.4) -> requests.Session:
    """Session that retries network errors and 429/5xx responses with exponential backoff."""
    session = requests.Session()
    retries = Retry(
        total=total,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=("GET",),
    )
    session.mount("http://", HTTPAdapter(max_retries=retries))
    session.mount("https://", HTTPAdapter(max_retries=retries))
    return session


def download_photo(
    photo_name: str,
    api_key: str,
    out_dir: Union[str, Path],
    *,
    max_width: int = 800,
    session: Optional[requests.Session] = None,
) -> Optional[Path]:
    """Fetch one photo into ``out_dir``; returns the path, or None when it was already there."""
    target = Path(out_dir) / photo_filename(photo_name)
    if target.exists():
        return None

    http = session or build_session()
    response = http.get(
        _MEDIA_URL.format(name=photo_name),
        params={"maxWidthPx": max_width, "key": api_key},
        timeout=REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(response.content)
    return target


def download_photos(
    photo_names: Iterable[str],
    api_key: str,
    out_dir: Union[str, Path],
    *,
    max_width: int = 800,
    session: Optional[requests.Session] = None,
) -> Dict[str, int]:
    """Download every photo with a bounded pool; failures are logged and counted."""
    names = list(dict.fromkeys(name for name in photo_names if name))
    stats = {"downloaded": 0, "skipped": 0, "failed": 0}
    if not names:
        return stats

    http = session or build_session()
    with ThreadPoolExecutor(max_workers=MAX_WORKERS) as executor:
        futures = {
            executor.submit(
                download_photo,
                name,
                api_key,
                out_dir,
                max_width=max_width,
                session=http,
            ): name
            for name in names
        }
        for future in as_completed(futures):
            try:
                path = future.result()
            except requests.RequestException as exc:
                logger.warning("Failed to download photo %s: %s", futures[future], exc)
                stats["failed"] += 1
                continue
            stats["downloaded" if path else "skipped"] += 1

    logger.info(
        "Photos: downloaded=%d skipped=%d failed=%d",
        stats["downloaded"],
        stats["skipped"],
        stats["failed"],
    )
    return stats
