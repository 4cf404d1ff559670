# schemas.py
"""Data validation schemas for the ride and county case maps."""

import pandera as pa
from pandera.typing import Series


class TrackPointSchema(pa.DataFrameModel):
    """Schema for the shaped GPS track, one row per sample."""
    longitude: Series[float] = pa.Field(ge=-180, le=180, nullable=False)
    latitude: Series[float] = pa.Field(ge=-90, le=90, nullable=False)
    elevation: Series[float] = pa.Field(nullable=True)
    speed: Series[float] = pa.Field(ge=0, nullable=True)
    timestamp: Series[pa.DateTime] = pa.Field(nullable=True)

    class Config:
        coerce = True


class CountyVertexSchema(pa.DataFrameModel):
    """Schema for the county boundary vertex table."""
    region: Series[str] = pa.Field(nullable=False)
    subregion: Series[str] = pa.Field(nullable=False)
    group: Series[float] = pa.Field(nullable=False)
    order: Series[int] = pa.Field(nullable=False)
    longitude: Series[float] = pa.Field(ge=-180, le=180, nullable=False)
    latitude: Series[float] = pa.Field(ge=-90, le=90, nullable=False)

    class Config:
        coerce = True


class PopulationSchema(pa.DataFrameModel):
    """Schema for the normalized county population table."""
    county: Series[str] = pa.Field(nullable=False, unique=True, str_matches=r"^[^A-Z.]*$")
    population: Series[int] = pa.Field(ge=0, nullable=False)

    class Config:
        coerce = True


class CaseSchema(pa.DataFrameModel):
    """Schema for the latest case count per county."""
    county: Series[str] = pa.Field(nullable=False, unique=True)
    date: Series[pa.DateTime] = pa.Field(nullable=False)
    cases: Series[int] = pa.Field(ge=0, nullable=False)

    class Config:
        coerce = True


class CountyFeatureSchema(pa.DataFrameModel):
    """Schema for the attribute columns of the composite county features."""
    county: Series[str] = pa.Field(nullable=False, unique=True)
    cases: Series[float] = pa.Field(ge=0, nullable=True)
    population: Series[float] = pa.Field(ge=0, nullable=True)
    cases_per_10000: Series[float] = pa.Field(ge=0, nullable=True)

    class Config:
        coerce = True
