"""First-seen-wins accumulation of clinics keyed by place_id."""

import threading
from typing import AbstractSet, Iterator, List, Optional, Set

from dermclinics.models import Clinic


class ClinicCollector:
    """Deduplicates clinics for one run (or one jurisdiction of a run).

    ``exclude`` is a live view of ids owned elsewhere, typically the ids
    already committed earlier in the run; they are treated as seen.
    """

    def __init__(self, exclude: Optional[AbstractSet[str]] = None) -> None:
        self._exclude = exclude if exclude is not None else frozenset()
        self._seen: Set[str] = set()
        self._clinics: List[Clinic] = []
        self._lock = threading.Lock()

    def add(self, clinic: Clinic) -> bool:
        """Insert the clinic unless its place_id was already seen; True if inserted."""
        with self._lock:
            if clinic.place_id in self._seen or clinic.place_id in self._exclude:
                return False
            self._seen.add(clinic.place_id)
            self._clinics.append(clinic)
            return True

    def merge(self, other: "ClinicCollector") -> int:
        return sum(1 for clinic in other.clinics if self.add(clinic))

    def __len__(self) -> int:
        return len(self._clinics)

    def __iter__(self) -> Iterator[Clinic]:
        return iter(self.clinics)

    @property
    def ids(self) -> AbstractSet[str]:
        return self._seen

    @property
    def clinics(self) -> List[Clinic]:
        """Clinics in first-insertion order."""
        with self._lock:
            return list(self._clinics)

    def sorted_clinics(self) -> List[Clinic]:
        return sorted(self.clinics, key=lambda c: (c.state_code or "", c.display_name.lower(), c.place_id))
