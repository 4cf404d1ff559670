# -*- coding: utf-8 -*-
import dataclasses

import pandas as pd
import streamlit as st

# --- Custom Modules ---
from config import STATE_NAME
from data_loader import LOAD_ERRORS, load_county_features, load_track_points
from map_view import CASE_MAP_CONFIG, TRACK_MAP_CONFIG, create_case_map, create_track_map, render_map
from plotting import plot_case_rates, plot_track_profile
from ui import setup_page_config, display_header_and_about, display_sidebar, display_download_button


def main() -> None:
    """Main function to run the Streamlit application."""
    setup_page_config()
    display_header_and_about()

    track_tab, county_tab = st.tabs(["Ride Track", "COVID-19 by County"])

    with track_tab:
        handle_track_view()
    with county_tab:
        handle_county_view()

    st.markdown("---")
    st.markdown(
        "Data Sources: [The New York Times](https://github.com/nytimes/covid-19-data), "
        "[U.S. Census Bureau](https://www.census.gov/programs-surveys/popest.html)"
    )


def handle_track_view():
    """Handles the ride track map and its elevation and speed profile."""
    st.header("Ride Track")
    try:
        with st.spinner("Loading ride track..."):
            track = load_track_points()
    except LOAD_ERRORS as e:
        st.error(f"Failed to load the ride track: {e}")
        return

    if track.empty:
        st.warning("The ride track has no samples with coordinates.")
        return

    st.caption(f"{len(track):,} GPS samples, markers colored by elevation")
    render_map(create_track_map(track, TRACK_MAP_CONFIG), key="track_map")
    st.plotly_chart(plot_track_profile(track), use_container_width=True)


def handle_county_view():
    """Handles the county choropleth of cases per 10,000 residents."""
    st.header(f"{STATE_NAME} COVID-19 Cases per 10,000 Residents")
    try:
        with st.spinner("Fetching county boundaries, population and case counts..."):
            features, unmatched = load_county_features(STATE_NAME)
    except LOAD_ERRORS as e:
        st.error(f"Failed to build the county map: {e}")
        return

    if features.empty:
        st.warning("No county boundaries were found for the selected state.")
        return

    if unmatched:
        st.warning(
            f"No boundary found for {len(unmatched)} county(ies) with case data: "
            f"{', '.join(name.title() for name in unmatched)}. They are left off the map."
        )

    vmin, vmax = display_sidebar(float(features["cases_per_10000"].fillna(0).max()))
    config = dataclasses.replace(CASE_MAP_CONFIG, vmin=vmin, vmax=vmax)

    missing = features[features["cases_per_10000"].isna()]
    if not missing.empty:
        st.warning(
            f"No case rate for {len(missing)} county(ies): "
            f"{', '.join(missing['county'].str.title())}. They are shown in gray."
        )

    latest_date = features["date"].max() if "date" in features.columns else None
    if latest_date is not None and pd.notna(latest_date):
        st.caption(f"Latest reports as of {latest_date:%Y-%m-%d}")

    render_map(create_case_map(features, config), key="case_map")
    st.plotly_chart(plot_case_rates(features), use_container_width=True)
    display_download_button(features, STATE_NAME)


if __name__ == "__main__":
    main()
