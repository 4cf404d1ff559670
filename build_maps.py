# build_maps.py
import os
import sys

from config import DATA_SOURCES, STATE_NAME
from data_loader import LOAD_ERRORS, read_county_features, read_track_points
from map_view import create_case_map, create_track_map, save_map


def build_track_map(output_dir: str) -> str:
    print(f"  - Fetching ride track from {DATA_SOURCES['track']}...")
    track = read_track_points(DATA_SOURCES["track"])
    print(f"  - {len(track)} GPS samples loaded.")
    return save_map(create_track_map(track), os.path.join(output_dir, "track_map.html"))


def build_case_map(output_dir: str, state: str = STATE_NAME) -> str:
    print("  - Fetching county boundaries, population estimates and case counts (the case file is large)...")
    features, unmatched = read_county_features(state)
    print(f"  - Built {len(features)} county features.")
    if unmatched:
        print(f"  - WARNING: no boundary for {', '.join(unmatched)}")
    no_rate = features[features["cases_per_10000"].isna()]["county"].tolist()
    if no_rate:
        print(f"  - WARNING: no case rate for {', '.join(no_rate)}")
    return save_map(create_case_map(features), os.path.join(output_dir, "case_map.html"))


def main():
    """
    Runs both pipelines outside Streamlit and writes the maps as standalone HTML.
    Any fetch or validation failure aborts the build.
    """
    output_dir = sys.argv[1] if len(sys.argv) > 1 else "."
    os.makedirs(output_dir, exist_ok=True)
    print("--- Starting Map Build ---")

    try:
        track_path = build_track_map(output_dir)
        print(f"Track map saved to {track_path}")
        case_path = build_case_map(output_dir)
        print(f"County case map saved to {case_path}")
    except LOAD_ERRORS as e:
        print(f"--- FATAL: Map build failed: {e} ---")
        sys.exit(1)

    print("--- Map Build Complete ---")


if __name__ == "__main__":
    main()
