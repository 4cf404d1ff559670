# -*- coding: utf-8 -*-
import json
import os

import numpy as np
import pandas as pd
import pytest
import requests
from unittest.mock import patch, MagicMock

from config import DATA_SOURCES
from data_loader import (
    add_case_rate,
    attach_ring_counties,
    build_county_features,
    build_county_polygons,
    build_rings,
    counties_without_boundaries,
    county_vertices_from_geojson,
    fetch_csv,
    join_cases_population,
    latest_cases_per_county,
    load_county_features,
    load_county_polygons,
    load_latest_cases,
    load_population,
    load_track_points,
    normalize_county_name,
    normalize_county_names,
    shape_county_vertices,
    shape_population,
    shape_track_points,
)

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")


def mock_api_response_func(url, timeout=None):
    mock_response = MagicMock()
    mock_response.status_code = 200
    data = {
        "date": ["2021-01-01", "2021-01-02", "2021-01-01", "2021-01-02", "2021-01-02"],
        "county": ["Hennepin", "Hennepin", "Ramsey", "Ramsey", "Unknown"],
        "state": ["Minnesota"] * 5,
        "fips": ["27053", "27053", "27123", "27123", None],
        "cases": [100, 120, 40, 55, 3],
        "deaths": [1, 1, 0, 0, 0],
    }
    mock_response.text = pd.DataFrame(data).to_csv(index=False)
    mock_response.raise_for_status = MagicMock()
    return mock_response


@pytest.fixture
def raw_population():
    return pd.DataFrame({
        "SUMLEV": [40, 50, 50, 50, 50],
        "STNAME": ["Minnesota", "Minnesota", "Minnesota", "Minnesota", "Wisconsin"],
        "CTYNAME": ["Minnesota", "Hennepin County", "St. Louis County", "Lac qui Parle County", "Pierce County"],
        "POPESTIMATE2019": [5639632, 1265843, 199070, 6623, 42754],
    })


@pytest.fixture
def raw_cases():
    return pd.DataFrame({
        "date": ["2021-03-01", "2021-03-02", "2021-03-03", "2021-03-02", "2021-03-03", "2021-03-03"],
        "county": ["Hennepin", "Hennepin", "St. Louis", "St. Louis", "Unknown", "Pierce"],
        "state": ["Minnesota", "Minnesota", "Minnesota", "Minnesota", "Minnesota", "Wisconsin"],
        "fips": ["27053", "27053", "27137", "27137", None, "55093"],
        "cases": [1000, 1010, 300, 290, 5, 80],
        "deaths": [10, 10, 3, 3, 0, 1],
    })


@pytest.fixture
def vertices():
    raw = pd.DataFrame({
        "long": [0, 1, 1, 0, 2, 3, 3, 5, 6, 6, 5, 8, 9],
        "lat": [0, 0, 1, 1, 2, 2, 3, 5, 5, 6, 6, 8, 8],
        "group": [1, 1, 1, 1, 2, 2, 2, 3, 3, 3, 3, 4, 4],
        "order": list(range(1, 14)),
        "region": ["minnesota"] * 13,
        "subregion": ["hennepin"] * 4 + ["hennepin"] * 3 + ["ramsey"] * 4 + ["anoka"] * 2,
    })
    return shape_county_vertices(raw, "Minnesota")


# --- Name normalization ---

def test_normalize_county_name_strips_suffix_and_case():
    assert normalize_county_name("Hennepin County") == "hennepin"
    assert normalize_county_name("St. Louis County, Minnesota") == "st louis"
    assert normalize_county_name("Lac qui Parle County") == "lac qui parle"


def test_normalize_county_names_matches_scalar_version():
    names = pd.Series(["Hennepin County", "St. Louis County", "Lake of the Woods County"])
    expected = [normalize_county_name(name) for name in names]
    assert normalize_county_names(names).tolist() == expected


# --- Population ---

def test_shape_population_keeps_state_counties_only(raw_population):
    population = shape_population(raw_population, "Minnesota")
    assert population["county"].tolist() == ["hennepin", "st louis", "lac qui parle"]
    assert population.loc[population["county"] == "hennepin", "population"].iloc[0] == 1265843


def test_population_names_have_no_uppercase_or_periods(raw_population):
    population = shape_population(raw_population, "Minnesota")
    assert not population["county"].str.contains(r"[A-Z]").any()
    assert not population["county"].str.contains(".", regex=False).any()


def test_shape_population_missing_column_raises(raw_population):
    with pytest.raises(KeyError):
        shape_population(raw_population.drop(columns="POPESTIMATE2019"))


# --- Cases ---

def test_latest_cases_keeps_most_recent_per_county(raw_cases):
    latest = latest_cases_per_county(raw_cases, "Minnesota")
    assert latest["county"].tolist() == ["hennepin", "st louis"]
    assert latest["cases"].tolist() == [1010, 300]
    assert latest["date"].tolist() == [pd.Timestamp("2021-03-02"), pd.Timestamp("2021-03-03")]


def test_latest_cases_for_state_without_rows_is_empty(raw_cases):
    latest = latest_cases_per_county(raw_cases, "Iowa")
    assert latest.empty
    assert list(latest.columns) == ["county", "date", "cases"]


def test_join_does_not_increase_row_count(raw_cases, raw_population):
    cases = latest_cases_per_county(raw_cases, "Minnesota")
    population = shape_population(raw_population, "Minnesota")
    duplicated = pd.concat([population, population], ignore_index=True)
    joined = join_cases_population(cases, duplicated)
    assert len(joined) == len(cases)


def test_hennepin_join_succeeds():
    cases = pd.DataFrame({"county": [normalize_county_name("Hennepin County")], "cases": [10]})
    population = pd.DataFrame({"county": ["hennepin"], "population": [1000]})
    joined = join_cases_population(cases, population)
    assert joined["population"].iloc[0] == 1000


def test_add_case_rate():
    df = pd.DataFrame({
        "county": ["a", "b", "c"],
        "cases": [50, 10, 10],
        "population": [20000, 0, np.nan],
    })
    rated = add_case_rate(df)
    assert np.isclose(rated["cases_per_10000"].iloc[0], 50 / 20000 * 10000)
    assert pd.isna(rated["cases_per_10000"].iloc[1])
    assert pd.isna(rated["cases_per_10000"].iloc[2])


# --- Geometry ---

def test_build_county_polygons_one_row_per_county(vertices):
    polygons = build_county_polygons(vertices)
    # anoka has only two vertices and cannot form a ring
    assert polygons["county"].tolist() == ["hennepin", "ramsey"]
    assert polygons["county"].is_unique
    assert polygons.crs.to_epsg() == 4326


def test_build_county_polygons_closes_rings_and_merges_parts(vertices):
    polygons = build_county_polygons(vertices).set_index("county")
    assert polygons.loc["hennepin", "geometry"].geom_type == "MultiPolygon"
    ramsey = polygons.loc["ramsey", "geometry"]
    assert ramsey.geom_type == "Polygon"
    coords = list(ramsey.exterior.coords)
    assert coords[0] == coords[-1]
    assert np.isclose(ramsey.area, 1.0)


def test_shape_county_vertices_filters_state():
    raw = pd.DataFrame({
        "long": [0, 1], "lat": [0, 1], "group": [1, 2], "order": [1, 2],
        "region": ["minnesota", "wisconsin"], "subregion": ["st. louis", "pierce"],
    })
    shaped = shape_county_vertices(raw, "Minnesota")
    assert shaped["subregion"].tolist() == ["st louis"]
    assert {"longitude", "latitude"} <= set(shaped.columns)


def test_build_county_features_one_row_per_region(vertices):
    polygons = build_county_polygons(vertices)
    attributes = add_case_rate(pd.DataFrame({
        "county": ["hennepin", "hennepin", "st louis"],
        "cases": [100, 100, 5],
        "population": [10000, 10000, 500],
    }))
    features = build_county_features(polygons, attributes)
    assert len(features) == len(polygons)
    assert features["county"].is_unique
    row = features.set_index("county").loc["hennepin"]
    assert np.isclose(row["cases_per_10000"], 100.0)
    assert pd.isna(features.set_index("county").loc["ramsey", "cases"])


# --- Track ---

def test_shape_track_points_renames_and_preserves_order():
    raw = pd.DataFrame({
        "lon": [-93.1, -93.2, None],
        "lat": [44.9, 45.0, 45.1],
        "ele": [250.0, 260.0, 270.0],
        "speed": [1.0, 2.0, 3.0],
        "time": ["2019-06-15T13:02:05Z", "2019-06-15T13:03:05Z", "2019-06-15T13:04:05Z"],
        "hr": [120, 125, 130],
    })
    track = shape_track_points(raw)
    assert list(track.columns) == ["longitude", "latitude", "elevation", "speed", "timestamp"]
    assert track["longitude"].tolist() == [-93.1, -93.2]
    assert track["timestamp"].iloc[0] == pd.Timestamp("2019-06-15 13:02:05")


def test_load_track_points_from_fixture_file():
    load_track_points.clear()
    track = load_track_points(os.path.join(FIXTURES, "ride_track.csv"))
    assert len(track) == 31
    assert track["longitude"].notna().all()
    assert track["timestamp"].is_monotonic_increasing


def test_load_county_polygons_from_vertex_csv():
    load_county_polygons.clear()
    polygons = load_county_polygons(os.path.join(FIXTURES, "mn_county_boundaries.csv"), "Minnesota")
    assert "hennepin" in polygons["county"].tolist()
    assert "st louis" in polygons["county"].tolist()
    assert "pierce" not in polygons["county"].tolist()
    assert polygons.geometry.is_valid.all()


def test_bowtie_ring_is_repaired_before_dissolve():
    raw = pd.DataFrame({
        "long": [0, 1, 0, 1, 0, 1, 1, 0],
        "lat": [0, 1, 1, 0, 0, 0, 1, 1],
        "group": [1, 1, 1, 1, 2, 2, 2, 2],
        "order": list(range(1, 9)),
        "region": ["minnesota"] * 8,
        "subregion": ["a"] * 8,
    })
    polygons = build_county_polygons(shape_county_vertices(raw, "Minnesota"))
    assert polygons["county"].tolist() == ["a"]
    assert polygons.geometry.is_valid.all()
    assert np.isclose(polygons.geometry.iloc[0].area, 1.0)


def test_bowtie_ring_alone_keeps_both_lobes():
    raw = pd.DataFrame({
        "long": [0, 1, 0, 1], "lat": [0, 1, 1, 0], "group": [1] * 4, "order": [1, 2, 3, 4],
        "region": ["minnesota"] * 4, "subregion": ["a"] * 4,
    })
    polygons = build_county_polygons(shape_county_vertices(raw, "Minnesota"))
    geometry = polygons.geometry.iloc[0]
    assert geometry.is_valid
    assert np.isclose(geometry.area, 0.5)


def test_attach_ring_counties_joins_on_ring_id(vertices):
    rings = build_rings(vertices)
    assert sorted(rings["group"].tolist()) == [1, 2, 3]

    # ring 2 has no entry in the lookup, so it is dropped rather than duplicated
    lookup = vertices[vertices["group"] != 2]
    attached = attach_ring_counties(rings, lookup)
    assert len(attached) == 2
    assert dict(zip(attached["group"], attached["county"])) == {1: "hennepin", 3: "ramsey"}


# --- County GeoJSON ---

def _county_geojson():
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "id": "27053",
                "properties": {"STATE": "27", "COUNTY": "053", "NAME": "Hennepin"},
                "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]},
            },
            {
                "type": "Feature",
                "id": "27137",
                "properties": {"STATE": "27", "COUNTY": "137", "NAME": "St. Louis"},
                "geometry": {
                    "type": "MultiPolygon",
                    "coordinates": [
                        [[[2, 2], [3, 2], [3, 3], [2, 3], [2, 2]]],
                        [[[5, 5], [6, 5], [6, 6], [5, 5]]],
                    ],
                },
            },
            {
                "type": "Feature",
                "id": "55093",
                "properties": {"STATE": "55", "COUNTY": "093", "NAME": "Pierce"},
                "geometry": {"type": "Polygon", "coordinates": [[[8, 8], [9, 8], [9, 9], [8, 8]]]},
            },
        ],
    }


def test_county_vertices_from_geojson_flattens_parts():
    vertices = county_vertices_from_geojson(_county_geojson(), "27", "Minnesota")
    assert list(vertices.columns) == ["long", "lat", "group", "order", "region", "subregion"]
    assert set(vertices["subregion"]) == {"Hennepin", "St. Louis"}
    assert vertices["group"].nunique() == 3
    assert (vertices["region"] == "minnesota").all()
    assert vertices["order"].is_monotonic_increasing


def test_county_vertices_from_geojson_unknown_state_is_empty():
    vertices = county_vertices_from_geojson(_county_geojson(), "19", "Iowa")
    assert vertices.empty


# --- Fetching ---

def _response(body: bytes, status_code: int = 200) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body
    return response


def test_fetch_csv_uses_requests_for_urls():
    with patch("requests.get", side_effect=mock_api_response_func) as mock_get:
        df = fetch_csv("https://example.org/us-counties.csv")
        assert mock_get.called
        assert len(df) == 5


def test_fetch_csv_propagates_http_errors():
    response = MagicMock()
    response.raise_for_status.side_effect = requests.exceptions.HTTPError("404 Client Error")
    with patch("requests.get", return_value=response):
        with pytest.raises(requests.exceptions.HTTPError):
            fetch_csv("https://example.org/missing.csv")


def test_fetch_csv_decodes_with_given_encoding():
    body = "CTYNAME,POP\nDoña Ana County,218195\n".encode("latin-1")
    with patch("requests.get", return_value=_response(body)):
        df = fetch_csv("https://example.org/pop.csv", encoding="latin-1")
    assert df["CTYNAME"].iloc[0] == "Doña Ana County"


def test_load_population_reads_latin1_census_file():
    load_population.clear()
    body = (
        "SUMLEV,STNAME,CTYNAME,POPESTIMATE2019\n"
        "40,New Mexico,New Mexico,2096829\n"
        "50,New Mexico,Doña Ana County,218195\n"
        "50,New Mexico,Bernalillo County,679121\n"
    ).encode("latin-1")
    with patch("requests.get", return_value=_response(body)):
        population = load_population("https://example.org/co-est2019-alldata.csv", "New Mexico")
    assert population["county"].tolist() == ["doña ana", "bernalillo"]
    assert population["population"].tolist() == [218195, 679121]


def test_load_latest_cases_api_call():
    load_latest_cases.clear()
    with patch("requests.get", side_effect=mock_api_response_func) as mock_get:
        df = load_latest_cases("https://example.org/us-counties.csv", "Minnesota")

        assert mock_get.called
        assert isinstance(df, pd.DataFrame)
        assert df["county"].tolist() == ["hennepin", "ramsey"]
        assert df["cases"].tolist() == [120, 55]


def mock_county_sources(url, timeout=None):
    if url == DATA_SOURCES["county_boundaries"]:
        return _response(json.dumps(_county_geojson()).encode("utf-8"))
    if url == DATA_SOURCES["population"]:
        return _response((
            "SUMLEV,STNAME,CTYNAME,POPESTIMATE2019\n"
            "40,Minnesota,Minnesota,5639632\n"
            "50,Minnesota,Hennepin County,10000\n"
            "50,Minnesota,St. Louis County,2000\n"
            "50,Minnesota,Pine County,29000\n"
        ).encode("latin-1"))
    if url == DATA_SOURCES["cases"]:
        return _response((
            "date,county,state,fips,cases,deaths\n"
            "2021-03-01,Hennepin,Minnesota,27053,40,0\n"
            "2021-03-02,Hennepin,Minnesota,27053,50,0\n"
            "2021-03-02,St. Louis,Minnesota,27137,10,0\n"
            "2021-03-02,Pine,Minnesota,27115,7,0\n"
        ).encode("utf-8"))
    return _response(b"", status_code=404)


def test_load_county_features_end_to_end():
    for loader in (load_county_polygons, load_latest_cases, load_population):
        loader.clear()
    with patch("requests.get", side_effect=mock_county_sources):
        features, unmatched = load_county_features("Minnesota", "27")

    assert features["county"].tolist() == ["hennepin", "st louis"]
    assert features["county"].is_unique
    rates = features.set_index("county")["cases_per_10000"]
    assert np.isclose(rates["hennepin"], 50 / 10000 * 10000)
    assert np.isclose(rates["st louis"], 10 / 2000 * 10000)
    assert features.set_index("county").loc["st louis", "geometry"].geom_type == "MultiPolygon"
    assert unmatched == ["pine"]


def test_counties_without_boundaries_lists_case_counties_off_the_map(vertices):
    polygons = build_county_polygons(vertices)
    cases = pd.DataFrame({"county": ["hennepin", "pine", "aitkin"], "cases": [1, 2, 3]})
    assert counties_without_boundaries(polygons, cases) == ["aitkin", "pine"]
