"""CLI job that downloads the first photos of every clinic in the snapshots."""

import argparse
import logging
from typing import Iterator, Optional, Sequence

from dermclinics.core.config import get_settings
from dermclinics.etl.snapshot import iter_snapshots
from dermclinics.vendors.place_photos import download_photos

logger = logging.getLogger(__name__)


def photo_names(out_dir: str, per_clinic: int = 1) -> Iterator[str]:
    for _, payload in iter_snapshots(out_dir):
        for clinic in payload.get("clinics") or []:
            for photo in (clinic.get("photos") or [])[:per_clinic]:
                if photo.get("name"):
                    yield photo["name"]


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = argparse.ArgumentParser(description="Download Places photos for collected clinics")
    parser.add_argument("--per-clinic", dest="per_clinic", type=int, default=1, help="Photos per clinic")
    parser.add_argument("--max-width", dest="max_width", type=int, default=800, help="Maximum photo width")
    args = parser.parse_args(argv)

    settings = get_settings()
    if not settings.google_api_key:
        logger.error("Configuration error: GOOGLE_PLACES_API_KEY is required")
        return 2

    stats = download_photos(
        photo_names(settings.output_dir, args.per_clinic),
        settings.google_api_key,
        settings.photo_dir,
        max_width=args.max_width,
    )
    return 1 if stats["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
