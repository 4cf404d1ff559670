from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import branca.colormap as cm
import folium
import pandas as pd
from folium.features import GeoJson, GeoJsonTooltip
from geopandas import GeoDataFrame
from streamlit_folium import st_folium

from config import (
    CASE_FILL_OPACITY,
    CASE_HIGHLIGHT_COLOR,
    CASE_LEGEND_CAPTION,
    CASE_PALETTE,
    DEFAULT_MAP_LOCATION,
    DEFAULT_TILES,
    DEFAULT_ZOOM,
    NO_DATA_COLOR,
    TRACK_MARKER_RADIUS,
    TRACK_PALETTE,
)


@dataclass
class MapConfig:
    """Everything a render call needs: base tiles, palette, legend and layer styling."""
    caption: str
    palette: List[str]
    tiles: str = DEFAULT_TILES
    vmin: Optional[float] = None
    vmax: Optional[float] = None
    highlight_color: Optional[str] = None
    fill_opacity: float = 0.8
    marker_radius: int = TRACK_MARKER_RADIUS


TRACK_MAP_CONFIG = MapConfig(caption="Elevation (m)", palette=list(TRACK_PALETTE))
CASE_MAP_CONFIG = MapConfig(
    caption=CASE_LEGEND_CAPTION,
    palette=list(CASE_PALETTE),
    highlight_color=CASE_HIGHLIGHT_COLOR,
    fill_opacity=CASE_FILL_OPACITY,
)


# --- Helper Functions ---

def get_colormap(
    values: Sequence[float],
    palette: List[str],
    caption: str,
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
) -> cm.LinearColormap:
    """
    Creates a branca colormap spanning the full range of `values`.
    Explicit bounds override the data range. A range of zero width is
    widened by one unit so every value still maps to a color.
    """
    series = pd.to_numeric(pd.Series(values, dtype="float64"), errors="coerce").dropna()
    if vmin is None:
        vmin = float(series.min()) if not series.empty else 0.0
    if vmax is None:
        vmax = float(series.max()) if not series.empty else 1.0
    if vmax <= vmin:
        vmax = vmin + 1.0
    return cm.LinearColormap(colors=palette, vmin=vmin, vmax=vmax, caption=caption)


def style_function(feature: Dict[str, Any], colormap: cm.LinearColormap, fill_opacity: float) -> Dict[str, Any]:
    """Fills a county by its case rate, gray when the rate is missing."""
    value = feature["properties"].get("cases_per_10000")
    return {
        "fillColor": colormap(value) if pd.notna(value) else NO_DATA_COLOR,
        "color": "black",
        "weight": 0.5,
        "fillOpacity": fill_opacity,
    }


def highlight_function(feature: Dict[str, Any], color: Optional[str]) -> Dict[str, Any]:
    return {"color": color or "black", "weight": 3, "fillOpacity": 0.9}


def county_label(row: pd.Series) -> str:
    """Composite hover text, e.g. 'Hennepin: 1,234 cases, 9.6 per 10,000'."""
    name = str(row["county"]).title()
    if pd.isna(row.get("cases")):
        return f"{name}: no case data"
    label = f"{name}: {int(row['cases']):,} cases"
    if pd.notna(row.get("cases_per_10000")):
        label += f", {row['cases_per_10000']:.1f} per 10,000"
    return label


# --- Map Creation Functions ---

def create_track_map(track: pd.DataFrame, config: MapConfig = TRACK_MAP_CONFIG) -> folium.Map:
    """
    Builds the ride map: a tile layer, the route line, one circle marker per
    GPS sample colored by elevation, and the elevation legend.
    """
    m = folium.Map(location=DEFAULT_MAP_LOCATION, zoom_start=DEFAULT_ZOOM, tiles=config.tiles)
    if track.empty:
        return m

    # The scale must cover the whole track before any marker asks it for a color
    colormap = get_colormap(track["elevation"], config.palette, config.caption, config.vmin, config.vmax)

    coords = track[["latitude", "longitude"]].values.tolist()
    folium.PolyLine(coords, color="#555555", weight=2, opacity=0.6, name="Route").add_to(m)

    markers = folium.FeatureGroup(name="GPS samples")
    for row in track.itertuples(index=False):
        color = colormap(row.elevation) if pd.notna(row.elevation) else NO_DATA_COLOR
        elevation = f"{row.elevation:.1f} m" if pd.notna(row.elevation) else "n/a"
        speed = f"{row.speed:.1f}" if pd.notna(row.speed) else "n/a"
        when = row.timestamp.strftime("%Y-%m-%d %H:%M:%S") if pd.notna(row.timestamp) else "n/a"
        folium.CircleMarker(
            location=[row.latitude, row.longitude],
            radius=config.marker_radius,
            color=color,
            fill=True,
            fill_color=color,
            fill_opacity=config.fill_opacity,
            popup=(
                f"<b>{when}</b><br>"
                f"Elevation: {elevation}<br>"
                f"Speed: {speed}"
            ),
        ).add_to(markers)
    markers.add_to(m)

    m.add_child(colormap)
    m.fit_bounds([
        [track["latitude"].min(), track["longitude"].min()],
        [track["latitude"].max(), track["longitude"].max()],
    ])
    return m


def create_case_map(features: GeoDataFrame, config: MapConfig = CASE_MAP_CONFIG) -> folium.Map:
    """
    Builds the county choropleth: polygons filled by cases per 10,000,
    hover highlighting, composite tooltip labels and the legend.
    """
    m = folium.Map(location=DEFAULT_MAP_LOCATION, zoom_start=DEFAULT_ZOOM, tiles=config.tiles)
    if features.empty:
        return m

    colormap = get_colormap(features["cases_per_10000"], config.palette, config.caption, config.vmin, config.vmax)

    map_data = features.copy()
    map_data["label"] = map_data.apply(county_label, axis=1)
    # Keep the GeoJSON payload JSON-serializable
    if "date" in map_data.columns:
        map_data["date"] = map_data["date"].astype(str)

    tooltip = GeoJsonTooltip(
        fields=["label"],
        aliases=[""],
        localize=True,
        sticky=False,
        style="""
            background-color: #F0EFEF;
            border: 2px solid black;
            border-radius: 3px;
            box-shadow: 3px;
        """,
    )

    GeoJson(
        map_data,
        style_function=lambda feature: style_function(feature, colormap, config.fill_opacity),
        highlight_function=lambda feature: highlight_function(feature, config.highlight_color),
        tooltip=tooltip,
        name="counties",
    ).add_to(m)

    m.add_child(colormap)
    minx, miny, maxx, maxy = features.total_bounds
    m.fit_bounds([[miny, minx], [maxy, maxx]])
    return m


def render_map(m: folium.Map, key: str, height: int = 550) -> None:
    """Embeds a folium map in the Streamlit page."""
    st_folium(m, width=None, height=height, returned_objects=[], key=key)


def save_map(m: folium.Map, path: str) -> str:
    """Writes the map as a standalone HTML document and returns the path."""
    m.save(path)
    return path
