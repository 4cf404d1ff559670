import json
import re
from io import StringIO

import geopandas as gpd
import pandas as pd
import requests
import streamlit as st
from pandera.errors import SchemaError
from shapely.errors import GEOSException
from shapely.geometry import Polygon
from shapely.ops import unary_union
from shapely.validation import make_valid

from config import (
    CACHE_TTL,
    DATA_SOURCES,
    POPULATION_COLUMN,
    POPULATION_ENCODING,
    RATE_SCALE,
    REQUEST_TIMEOUT_SECONDS,
    STATE_FIPS,
    STATE_NAME,
)
from schemas import (
    CaseSchema,
    CountyFeatureSchema,
    CountyVertexSchema,
    PopulationSchema,
    TrackPointSchema,
)

# Census summary level for county rows; state totals use 40
COUNTY_SUMLEV = 50

# Everything a fetch-shape-validate pass can raise; ValueError covers pandas parser errors
LOAD_ERRORS = (requests.RequestException, SchemaError, KeyError, ValueError, GEOSException)

VERTEX_COLUMNS = ["long", "lat", "group", "order", "region", "subregion"]

_STATE_SUFFIX = re.compile(r",.*$")
_COUNTY_SUFFIX = re.compile(r"\s+(county|parish|borough|census area)$")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def _require_columns(df: pd.DataFrame, columns, label: str) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise KeyError(f"{label} is missing expected columns: {missing}")


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def fetch_csv(source: str, **read_kwargs) -> pd.DataFrame:
    """
    Reads a CSV from an http(s) URL or a local path.
    Network errors propagate to the caller; there is no retry.
    """
    if _is_url(source):
        response = requests.get(source, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        encoding = read_kwargs.pop("encoding", None)
        if encoding:
            response.encoding = encoding
        return pd.read_csv(StringIO(response.text), **read_kwargs)
    return pd.read_csv(source, **read_kwargs)


def fetch_geojson(source: str) -> dict:
    """Reads a GeoJSON FeatureCollection from an http(s) URL or a local path."""
    if _is_url(source):
        response = requests.get(source, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.json()
    with open(source, encoding="utf-8") as f:
        return json.load(f)


def normalize_county_name(name: str) -> str:
    """'St. Louis County, Minnesota' -> 'st louis'"""
    name = _STATE_SUFFIX.sub("", str(name)).strip().lower()
    name = _COUNTY_SUFFIX.sub("", name)
    name = _PUNCTUATION.sub("", name)
    return _WHITESPACE.sub(" ", name).strip()


def normalize_county_names(names: pd.Series) -> pd.Series:
    """Vectorised version of normalize_county_name."""
    return (
        names.astype(str)
        .str.replace(_STATE_SUFFIX, "", regex=True)
        .str.strip()
        .str.lower()
        .str.replace(_COUNTY_SUFFIX, "", regex=True)
        .str.replace(_PUNCTUATION, "", regex=True)
        .str.replace(_WHITESPACE, " ", regex=True)
        .str.strip()
    )


# --- Track ---

def shape_track_points(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Renames and filters the raw GPS export to longitude, latitude, elevation,
    speed and timestamp. Rows keep their file order.
    """
    df = raw.rename(columns={"lon": "longitude", "lat": "latitude", "ele": "elevation", "time": "timestamp"})
    cols_to_keep = ["longitude", "latitude", "elevation", "speed", "timestamp"]
    _require_columns(df, cols_to_keep, "Track data")
    df = df[cols_to_keep].copy()

    for col in ["longitude", "latitude", "elevation", "speed"]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["timestamp"] = pd.to_datetime(df["timestamp"], errors="coerce", utc=True).dt.tz_convert(None)
    df.dropna(subset=["longitude", "latitude"], inplace=True)
    return df.reset_index(drop=True)


# --- County geometry ---

def shape_county_vertices(raw: pd.DataFrame, state: str = STATE_NAME) -> pd.DataFrame:
    """Keeps the vertices of one state's counties, ordered by ring and vertex."""
    df = raw.rename(columns={"long": "longitude", "lat": "latitude"})
    _require_columns(df, ["region", "subregion", "group", "order", "longitude", "latitude"], "County boundary data")
    df = df[df["region"].str.lower() == state.lower()].copy()
    df["subregion"] = normalize_county_names(df["subregion"])
    return df.sort_values(["group", "order"]).reset_index(drop=True)


def county_vertices_from_geojson(geojson: dict, state_fips: str = STATE_FIPS, state: str = STATE_NAME) -> pd.DataFrame:
    """
    Flattens a county FeatureCollection (properties STATE and NAME) into the
    vertex table layout: one row per exterior vertex, one `group` per polygon part.
    """
    features = [
        feature for feature in geojson.get("features", [])
        if str((feature.get("properties") or {}).get("STATE")) == state_fips
    ]
    if not features:
        return pd.DataFrame(columns=VERTEX_COLUMNS)

    counties = gpd.GeoDataFrame.from_features(features, crs="EPSG:4326")
    _require_columns(counties, ["NAME"], "County GeoJSON properties")
    parts = counties.explode(index_parts=False).reset_index(drop=True)
    parts["group"] = parts.index + 1

    coords = parts.exterior.get_coordinates()
    vertices = coords.join(parts[["group", "NAME"]])
    vertices = vertices.rename(columns={"x": "long", "y": "lat", "NAME": "subregion"})
    vertices["region"] = state.lower()
    vertices["order"] = range(1, len(vertices) + 1)
    return vertices[VERTEX_COLUMNS].reset_index(drop=True)


def _polygonal(geometry):
    """make_valid can return lines or points next to the areas; keep the areas."""
    if geometry.geom_type == "GeometryCollection":
        geometry = unary_union([g for g in geometry.geoms if g.geom_type in ("Polygon", "MultiPolygon")])
    if geometry.is_empty or geometry.geom_type not in ("Polygon", "MultiPolygon"):
        return None
    return geometry


def build_rings(vertices: pd.DataFrame) -> gpd.GeoDataFrame:
    """
    One repaired polygon per ring id (`group`). Self-intersecting rings such as
    bowties come back as valid (Multi)Polygons.
    """
    points = gpd.GeoDataFrame(
        vertices[["group", "order"]],
        geometry=gpd.points_from_xy(vertices["longitude"], vertices["latitude"]),
        crs="EPSG:4326",
    )

    rings = []
    for group, ring in points.sort_values("order").groupby("group", sort=False):
        # Polygon closes the ring itself; anything under three vertices has no area
        if len(ring) < 3:
            continue
        geometry = _polygonal(make_valid(Polygon([(p.x, p.y) for p in ring.geometry])))
        if geometry is not None:
            rings.append({"group": group, "geometry": geometry})

    if not rings:
        return gpd.GeoDataFrame({"group": pd.Series(dtype=float)}, geometry=[], crs="EPSG:4326")
    return gpd.GeoDataFrame(rings, geometry="geometry", crs="EPSG:4326")


def attach_ring_counties(rings: gpd.GeoDataFrame, vertices: pd.DataFrame) -> gpd.GeoDataFrame:
    """
    Joins rings back to their county by ring id. Each id belongs to exactly one
    county, so the join keeps one row per ring.
    """
    ring_counties = vertices[["group", "subregion"]].drop_duplicates(subset="group", keep="first")
    ring_counties = ring_counties.rename(columns={"subregion": "county"})
    return rings.merge(ring_counties, on="group", how="inner", validate="one_to_one")


def build_county_polygons(vertices: pd.DataFrame) -> gpd.GeoDataFrame:
    """
    Turns a vertex table into one closed polygon per ring (`group`), then
    dissolves the rings so each county is a single (Multi)Polygon row.
    """
    rings = attach_ring_counties(build_rings(vertices), vertices)
    if rings.empty:
        return gpd.GeoDataFrame({"county": pd.Series(dtype=str)}, geometry=[], crs="EPSG:4326")

    polygons = rings.dissolve(by="county", as_index=False)
    polygons["geometry"] = polygons.geometry.apply(lambda geom: _polygonal(make_valid(geom)))
    return polygons[["county", "geometry"]].sort_values("county").reset_index(drop=True)


# --- Population ---

def shape_population(raw: pd.DataFrame, state: str = STATE_NAME) -> pd.DataFrame:
    """County-level population rows of one state, keyed by normalized county name."""
    _require_columns(raw, ["SUMLEV", "STNAME", "CTYNAME", POPULATION_COLUMN], "Population data")
    df = raw[(raw["SUMLEV"] == COUNTY_SUMLEV) & (raw["STNAME"].str.lower() == state.lower())].copy()
    df["county"] = normalize_county_names(df["CTYNAME"])
    df.rename(columns={POPULATION_COLUMN: "population"}, inplace=True)
    df["population"] = pd.to_numeric(df["population"], errors="coerce")
    df.dropna(subset=["population"], inplace=True)
    df = df.drop_duplicates(subset="county", keep="first")
    return df[["county", "population"]].reset_index(drop=True)


# --- Cases ---

def latest_cases_per_county(raw: pd.DataFrame, state: str = STATE_NAME) -> pd.DataFrame:
    """Keeps only the most recent report for each county of one state."""
    _require_columns(raw, ["date", "county", "state", "cases"], "Case data")
    df = raw[(raw["state"].str.lower() == state.lower()) & (raw["county"] != "Unknown")].copy()
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    df["cases"] = pd.to_numeric(df["cases"], errors="coerce")
    df.dropna(subset=["date", "cases"], inplace=True)
    df["county"] = normalize_county_names(df["county"])

    if df.empty:
        return pd.DataFrame({"county": pd.Series(dtype=str), "date": pd.Series(dtype="datetime64[ns]"), "cases": pd.Series(dtype=int)})

    latest = df.loc[df.groupby("county")["date"].idxmax()]
    latest = latest.astype({"cases": "int64"})
    return latest[["county", "date", "cases"]].sort_values("county").reset_index(drop=True)


def join_cases_population(cases: pd.DataFrame, population: pd.DataFrame) -> pd.DataFrame:
    """
    Left join on the normalized county name. Population keys are made unique
    first so the result never has more rows than `cases`.
    """
    population = population.drop_duplicates(subset="county", keep="first")
    return pd.merge(cases, population[["county", "population"]], on="county", how="left")


def add_case_rate(df: pd.DataFrame) -> pd.DataFrame:
    """Adds cases_per_10000; NaN where population is zero or missing."""
    df = df.copy()
    population = pd.to_numeric(df["population"], errors="coerce")
    population = population.where(population > 0)
    df["cases_per_10000"] = df["cases"] / population * RATE_SCALE
    return df


def build_county_features(polygons: gpd.GeoDataFrame, cases_with_population: pd.DataFrame) -> gpd.GeoDataFrame:
    """Attaches case attributes to the county polygons, one row per county."""
    attributes = cases_with_population.drop_duplicates(subset="county", keep="first")
    if "cases_per_10000" not in attributes.columns:
        attributes = add_case_rate(attributes)
    merged = polygons.merge(attributes, on="county", how="left")
    for col in ["cases", "population", "cases_per_10000"]:
        merged[col] = pd.to_numeric(merged[col], errors="coerce").astype(float)
    CountyFeatureSchema.validate(pd.DataFrame(merged.drop(columns="geometry")))
    return merged


def counties_without_boundaries(polygons: gpd.GeoDataFrame, cases: pd.DataFrame) -> list:
    """Counties that report cases but have no polygon, so the map cannot show them."""
    return sorted(set(cases["county"]) - set(polygons["county"]))


def combine_county_data(polygons, cases, population):
    """
    Joins latest cases to population, derives the rate and attaches it to the
    polygons. Returns the features and the case counties left off the map.
    """
    joined = add_case_rate(join_cases_population(cases, population))
    return build_county_features(polygons, joined), counties_without_boundaries(polygons, cases)


# --- Fetch, shape and validate ---

def read_track_points(source: str) -> pd.DataFrame:
    return TrackPointSchema.validate(shape_track_points(fetch_csv(source)))


def read_county_polygons(source: str, state: str = STATE_NAME, state_fips: str = STATE_FIPS) -> gpd.GeoDataFrame:
    """Accepts either a county GeoJSON or a `long,lat,group,order,region,subregion` CSV."""
    if source.lower().endswith((".json", ".geojson")):
        raw = county_vertices_from_geojson(fetch_geojson(source), state_fips, state)
    else:
        raw = fetch_csv(source)
    vertices = CountyVertexSchema.validate(shape_county_vertices(raw, state))
    return build_county_polygons(vertices)


def read_population(source: str, state: str = STATE_NAME) -> pd.DataFrame:
    raw = fetch_csv(source, encoding=POPULATION_ENCODING)
    return PopulationSchema.validate(shape_population(raw, state))


def read_latest_cases(source: str, state: str = STATE_NAME) -> pd.DataFrame:
    raw = fetch_csv(source, dtype={"fips": str})
    return CaseSchema.validate(latest_cases_per_county(raw, state))


def read_county_features(state: str = STATE_NAME, state_fips: str = STATE_FIPS):
    """Uncached county pipeline for batch builds."""
    return combine_county_data(
        read_county_polygons(DATA_SOURCES["county_boundaries"], state, state_fips),
        read_latest_cases(DATA_SOURCES["cases"], state),
        read_population(DATA_SOURCES["population"], state),
    )


# --- Cached loaders used by the app ---

@st.cache_data(ttl=CACHE_TTL, show_spinner=False)
def load_track_points(source: str = DATA_SOURCES["track"]) -> pd.DataFrame:
    """Loads and validates the GPS track."""
    return read_track_points(source)


@st.cache_data(ttl=CACHE_TTL, show_spinner=False)
def load_county_polygons(
    source: str = DATA_SOURCES["county_boundaries"],
    state: str = STATE_NAME,
    state_fips: str = STATE_FIPS,
) -> gpd.GeoDataFrame:
    """Loads the county boundaries and builds one polygon per county."""
    return read_county_polygons(source, state, state_fips)


@st.cache_data(ttl=CACHE_TTL, show_spinner=False)
def load_population(source: str = DATA_SOURCES["population"], state: str = STATE_NAME) -> pd.DataFrame:
    """Loads the Census estimates and keeps the state's counties."""
    return read_population(source, state)


@st.cache_data(ttl=CACHE_TTL, show_spinner=False)
def load_latest_cases(source: str = DATA_SOURCES["cases"], state: str = STATE_NAME) -> pd.DataFrame:
    """Loads the case series and keeps the most recent count per county."""
    return read_latest_cases(source, state)


def load_county_features(state: str = STATE_NAME, state_fips: str = STATE_FIPS):
    """Runs the full county pipeline on the cached loaders: polygons, latest cases, population, rate."""
    return combine_county_data(
        load_county_polygons(DATA_SOURCES["county_boundaries"], state, state_fips),
        load_latest_cases(DATA_SOURCES["cases"], state),
        load_population(DATA_SOURCES["population"], state),
    )
