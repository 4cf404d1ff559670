# -*- coding: utf-8 -*-
"""
This module contains the UI components for the Streamlit application.
"""
import streamlit as st
from datetime import datetime

from config import STATE_NAME


def setup_page_config():
    """Sets the Streamlit page configuration."""
    st.set_page_config(
        page_title=f"{STATE_NAME} Ride & County Case Maps",
        page_icon="🗺️",
        layout="wide",
    )


def display_header_and_about():
    """Displays the main title and the 'About' expander."""
    st.title(f"{STATE_NAME} Ride & County Case Maps")
    st.markdown(
        "Two interactive maps built from small public datasets: a GPS-logged bike ride "
        f"colored by elevation, and {STATE_NAME} counties shaded by COVID-19 cases per 10,000 residents."
    )
    with st.expander("About the data"):
        st.markdown(
            """
            - **Ride track:** one GPS sample per row with longitude, latitude, elevation, speed and time.
            - **County boundaries:** a table of boundary vertices per county, joined into one polygon per county.
            - **Population:** U.S. Census Bureau county population estimates (2019).
            - **Cases:** The New York Times cumulative county case counts; only the latest report per county is used.
            """
        )


def display_sidebar(max_rate: float = 0.0):
    """
    Renders the sidebar controls.

    Args:
        max_rate (float): The largest observed cases per 10,000, used to seed the manual bounds.

    Returns:
        tuple: (vmin, vmax) for the county legend, or (None, None) to use the data range.
    """
    with st.sidebar:
        st.header("Map Controls")
        st.info(f"Data loaded: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        scale_mode = st.radio(
            "County color scale:",
            options=["Data range", "Manual"],
            key="scale_radio",
            help="Use the full range of the data, or pin the legend bounds.",
        )
        if scale_mode == "Data range":
            return None, None

        vmin = st.number_input("Lower bound", min_value=0.0, value=0.0, key="scale_min")
        vmax = st.number_input(
            "Upper bound",
            min_value=0.0,
            value=float(round(max_rate)) if max_rate else 100.0,
            key="scale_max",
        )
        if vmax <= vmin:
            st.warning("Upper bound must be above the lower bound; using the data range instead.")
            return None, None
        return vmin, vmax


def display_download_button(features, state_name):
    """
    Renders the download button for the county table.

    Args:
        features (pd.DataFrame): County features; geometry is dropped before export.
        state_name (str): Used in the file name.
    """
    if not features.empty:
        table = features.drop(columns="geometry", errors="ignore")
        st.sidebar.download_button(
            label="Download County Table (CSV)",
            data=table.to_csv(index=False).encode("utf-8"),
            file_name=f"{state_name.lower().replace(' ', '_')}_county_cases.csv",
            mime="text/csv",
            key="download_button",
        )
