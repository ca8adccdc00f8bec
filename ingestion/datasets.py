"""
Dataset definitions and remote source construction.

A ``DatasetSpec`` describes one GeoNames file family statically (where it
lives, which table it replaces, how its columns map). A ``DatasetSource`` is
one concrete, immutable download derived from a DatasetSpec, optionally qualified
by a country code.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
import re

from models.geonames import AlternateName, IsoLanguageCode


class _LoadTime:
    """Marker for a column filled with the time the chunk is loaded"""

    def __repr__(self) -> str:
        return "LOAD_TIME"


LOAD_TIME = _LoadTime()

DEFAULT_TRAILING_COLUMNS: Tuple[Tuple[str, Any], ...] = (
    ("created_at", LOAD_TIME),
    ("updated_at", None),
)

_COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")


@dataclass(frozen=True)
class DatasetSpec:
    key: str
    target_table: str
    columns: Tuple[str, ...]
    remote_name: str
    archive_member: Optional[str] = None
    country_remote_name: Optional[str] = None
    country_archive_member: Optional[str] = None
    header_lines: int = 0
    trailing_columns: Tuple[Tuple[str, Any], ...] = DEFAULT_TRAILING_COLUMNS

    @property
    def supports_countries(self) -> bool:
        return self.country_remote_name is not None


@dataclass(frozen=True)
class DatasetSource:
    spec: DatasetSpec
    url: str
    file_name: str
    archive_member: Optional[str] = None
    country_code: Optional[str] = None

    @property
    def label(self) -> str:
        if self.country_code:
            return f"{self.spec.key}[{self.country_code}]"
        return self.spec.key

    @property
    def is_archive(self) -> bool:
        return self.archive_member is not None

    @property
    def target_table(self) -> str:
        return self.spec.target_table

    @property
    def staging_table(self) -> str:
        name = f"{self.spec.target_table}_working"
        if self.country_code:
            name += f"_{self.country_code.lower()}"
        return name

    @property
    def previous_table(self) -> str:
        return f"{self.spec.target_table}_old"

    @property
    def extracted_name(self) -> str:
        return self.archive_member or self.file_name

    def storage_dir(self, storage_root: Path) -> Path:
        return Path(storage_root) / self.spec.key / (self.country_code or "all")


ALTERNATE_NAMES = DatasetSpec(
    key="alternate-names",
    target_table=AlternateName.__tablename__,
    columns=AlternateName.SOURCE_COLUMNS,
    remote_name="alternateNamesV2.zip",
    archive_member="alternateNamesV2.txt",
    country_remote_name="alternatenames/{country}.zip",
    country_archive_member="{country}.txt",
)

ISO_LANGUAGE_CODES = DatasetSpec(
    key="iso-language-codes",
    target_table=IsoLanguageCode.__tablename__,
    columns=IsoLanguageCode.SOURCE_COLUMNS,
    remote_name="iso-languagecodes.txt",
    header_lines=1,
)

DATASETS: Dict[str, DatasetSpec] = {
    spec.key: spec for spec in (ALTERNATE_NAMES, ISO_LANGUAGE_CODES)
}


def get_dataset(key: str) -> DatasetSpec:
    try:
        return DATASETS[key]
    except KeyError:
        raise ValueError(
            f"Unknown dataset '{key}'. Available: {', '.join(sorted(DATASETS))}"
        ) from None


def normalize_country_codes(countries: Optional[Iterable[str]]) -> List[str]:
    """Upper-case, validate and de-duplicate country codes, keeping order"""
    normalized: List[str] = []
    for country in countries or []:
        code = country.strip().upper()
        if not _COUNTRY_CODE.match(code):
            raise ValueError(f"Invalid country code '{country}': expected two letters")
        if code not in normalized:
            normalized.append(code)
    return normalized


def _join_url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def build_sources(
    dataset: str,
    base_url: str,
    countries: Optional[Iterable[str]] = None,
) -> List[DatasetSource]:
    """
    Build the download list for a dataset.

    Without countries a single whole-world source is returned; with countries,
    one source per code.
    """
    spec = get_dataset(dataset)
    codes = normalize_country_codes(countries)

    if not codes:
        return [
            DatasetSource(
                spec=spec,
                url=_join_url(base_url, spec.remote_name),
                file_name=Path(spec.remote_name).name,
                archive_member=spec.archive_member,
            )
        ]

    if not spec.supports_countries:
        raise ValueError(f"Dataset '{spec.key}' is not published per country")

    sources = []
    for code in codes:
        remote_name = spec.country_remote_name.format(country=code)
        member = (
            spec.country_archive_member.format(country=code)
            if spec.country_archive_member else None
        )
        sources.append(
            DatasetSource(
                spec=spec,
                url=_join_url(base_url, remote_name),
                file_name=Path(remote_name).name,
                archive_member=member,
                country_code=code,
            )
        )
    return sources
