# config.py

"""
Central configuration file for the Minnesota ride and county case maps.
This file stores constants and settings to make the application more maintainable.
"""

import os
from typing import Dict, Final, List

BASE_DIR: Final[str] = os.path.dirname(os.path.abspath(__file__))
DATA_DIR: Final[str] = os.path.join(BASE_DIR, "data")

# Sources for the four datasets. Either an http(s) URL or a local path.
# County boundaries may be a county GeoJSON (properties STATE, NAME) or a
# `long,lat,group,order,region,subregion` vertex CSV.
DATA_SOURCES: Final[Dict[str, str]] = {
    "track": os.path.join(DATA_DIR, "ride_track.csv"),
    "county_boundaries": "https://raw.githubusercontent.com/plotly/datasets/master/geojson-counties-fips.json",
    "population": "https://raw.githubusercontent.com/databricks/tech-talks/master/datasets/co-est2019-alldata.csv",
    "cases": "https://raw.githubusercontent.com/nytimes/covid-19-data/master/us-counties.csv",
}

# The Census estimates file is not UTF-8
POPULATION_ENCODING: Final[str] = "latin-1"
POPULATION_COLUMN: Final[str] = "POPESTIMATE2019"

# County datasets are filtered down to a single state
STATE_NAME: Final[str] = "Minnesota"
STATE_FIPS: Final[str] = "27"

REQUEST_TIMEOUT_SECONDS: Final[int] = 120
CACHE_TTL: Final[str] = "6h"

# --- Map defaults ---
DEFAULT_MAP_LOCATION: Final[List[float]] = [46.3, -94.3]
DEFAULT_ZOOM: Final[int] = 6
DEFAULT_TILES: Final[str] = "CartoDB positron"
NO_DATA_COLOR: Final[str] = "#808080"

# Elevation ramp for the ride markers, low to high
TRACK_PALETTE: Final[List[str]] = ["#2c7bb6", "#abd9e9", "#ffffbf", "#fdae61", "#d7191c"]
TRACK_MARKER_RADIUS: Final[int] = 4

# Cases per 10,000 ramp for the county fill layer
CASE_PALETTE: Final[List[str]] = ["#ffffb2", "#fecc5c", "#fd8d3c", "#f03b20", "#bd0026"]
CASE_HIGHLIGHT_COLOR: Final[str] = "#2b8cbe"
CASE_FILL_OPACITY: Final[float] = 0.7
CASE_LEGEND_CAPTION: Final[str] = "COVID-19 cases per 10,000 residents"

RATE_SCALE: Final[int] = 10_000
