"""
GeoNames reference tables replaced wholesale by the ingestion pipeline.

Column order matters: the loader maps tab-separated source fields onto
``SOURCE_COLUMNS`` positionally, and fills ``created_at``/``updated_at`` itself.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, CHAR, Index, Identity
from models.base import Base


class AlternateName(Base):
    """
    One row of alternateNamesV2.txt (or a per-country <CC>.txt).

    Source fields after ``is_historic`` (the from/to period columns) are not
    stored.
    """
    __tablename__ = "geonames_alternate_names"

    SOURCE_COLUMNS = (
        "alternate_name_id",
        "geonameid",
        "isolanguage",
        "alternate_name",
        "is_preferred_name",
        "is_short_name",
        "is_colloquial",
        "is_historic",
    )

    alternate_name_id = Column(BigInteger, primary_key=True, autoincrement=False)
    geonameid = Column(BigInteger, nullable=False)
    isolanguage = Column(String(7), nullable=True)
    alternate_name = Column(String(400), nullable=True)
    is_preferred_name = Column(Boolean, nullable=True)
    is_short_name = Column(Boolean, nullable=True)
    is_colloquial = Column(Boolean, nullable=True)
    is_historic = Column(Boolean, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_geonames_alternate_names_geonameid", "geonameid"),
        Index("ix_geonames_alternate_names_isolanguage", "isolanguage"),
    )


class IsoLanguageCode(Base):
    """One row of iso-languagecodes.txt (the file carries a header row)"""
    __tablename__ = "geonames_iso_language_codes"

    SOURCE_COLUMNS = (
        "iso_639_3",
        "iso_639_2",
        "iso_639_1",
        "language_name",
    )

    id = Column(Integer, Identity(), primary_key=True)
    iso_639_3 = Column(String(3), nullable=True)
    iso_639_2 = Column(String(50), nullable=True)
    iso_639_1 = Column(String(2), nullable=True)
    language_name = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_geonames_iso_language_codes_iso_639_3", "iso_639_3"),
    )


class FeatureClass(Base):
    """Static lookup of the nine GeoNames feature classes"""
    __tablename__ = "geonames_feature_classes"

    id = Column(CHAR(1), primary_key=True)
    description = Column(String(255), nullable=False)


FEATURE_CLASSES = {
    "A": "country, state, region,...",
    "H": "stream, lake, ...",
    "L": "parks,area, ...",
    "P": "city, village,...",
    "R": "road, railroad",
    "S": "spot, building, farm",
    "T": "mountain,hill,rock,...",
    "U": "undersea",
    "V": "forest,heath,...",
}
