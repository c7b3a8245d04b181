"""
Swiss Lens Similarity Explorer – Streamlit app
==============================================
Shows the per-cell similarity grid for one or more lenses (water, vegetation,
topography, roads) over Switzerland, lets the user draw a bounding box and
asks the search backend for the top-K most similar areas.

Data path: LENS_DATA_DIR (local directory or s3:// prefix), one .arrow file
per lens with lat / lon / similarity columns.

Run:
  streamlit run streamlit_app/app.py
"""

from __future__ import annotations

import json
from typing import Any

import streamlit as st

# ── Dependency check ──────────────────────────────────────────────────────────
# Run BEFORE any other import so the error message is readable, not a traceback.
_REQUIRED = {
    "folium":           "folium",
    "pandas":           "pandas",
    "pyarrow":          "pyarrow",
    "PIL":              "Pillow",
    "streamlit_folium": "streamlit-folium",
}
_missing = []
for _mod, _pkg in _REQUIRED.items():
    try:
        __import__(_mod)
    except ImportError:
        _missing.append(_pkg)

if _missing:
    st.error(
        "**Missing dependencies** – install them and restart Streamlit:\n\n"
        f"```\npip install {' '.join(_missing)}\n```\n\n"
        "Or install everything at once:\n\n"
        "```\npip install -e .\n```"
    )
    st.stop()

# ── Standard imports (all deps confirmed present) ─────────────────────────────
import folium                              # noqa: E402
import pandas as pd                        # noqa: E402
from folium.plugins import Draw            # noqa: E402
from streamlit_folium import st_folium     # noqa: E402

from lens_grid.errors import LensGridError                      # noqa: E402
from lens_grid.geometry import (                                # noqa: E402
    SWITZERLAND_BOUNDS,
    SWITZERLAND_CENTER,
    BoundingBox,
    cell_bounds,
)
from lens_grid.grid import GridResult, compute_grid             # noqa: E402
from lens_grid.lenses import (                                  # noqa: E402
    COLORMAPS,
    LENS_LABELS,
    Lens,
    value_to_color,
)
from lens_grid.render import StaticMapRenderer                  # noqa: E402
from lens_grid.search import (                                  # noqa: E402
    SearchRequest,
    SearchResult,
    output_size_km_to_degrees,
    search_top_k,
)

# ─────────────────────────────────────────────────────────────────────────────
# CONSTANTS
# ─────────────────────────────────────────────────────────────────────────────

MAP_ZOOM     = 8
MIN_ZOOM     = 8
MAX_ZOOM     = 14
MAP_HEIGHT   = 620

DEFAULT_TOP_K       = 5
DEFAULT_OUTPUT_KM   = 2.0

# Viewport edges are rounded before comparison so sub-pixel jitter from the
# browser does not trigger a recompute.
BOUNDS_PRECISION = 4


# ─────────────────────────────────────────────────────────────────────────────
# DATA LOADING
# ─────────────────────────────────────────────────────────────────────────────

@st.cache_data(ttl=600, show_spinner="Aggregating lens grid…")
def load_grid(lenses: tuple[str, ...], bounds: tuple[float, float, float, float],
              normalization: str) -> GridResult:
    """Cached grid for (lenses, viewport). bounds = (north, south, east, west)."""
    north, south, east, west = bounds
    bbox = BoundingBox(north=north, south=south, east=east, west=west)
    return compute_grid(list(lenses), bbox, normalization=normalization)


@st.cache_resource
def get_renderer() -> StaticMapRenderer:
    """One renderer (and tile cache) per Streamlit server process."""
    return StaticMapRenderer()


def _bounds_from_folium(raw: dict | None) -> BoundingBox | None:
    """Convert st_folium's {_southWest, _northEast} bounds, clamped to Switzerland."""
    if not raw:
        return None
    sw = raw.get("_southWest") or {}
    ne = raw.get("_northEast") or {}
    try:
        bbox = BoundingBox(
            north=round(float(ne["lat"]), BOUNDS_PRECISION),
            south=round(float(sw["lat"]), BOUNDS_PRECISION),
            east=round(float(ne["lng"]), BOUNDS_PRECISION),
            west=round(float(sw["lng"]), BOUNDS_PRECISION),
        ).clamp_to(SWITZERLAND_BOUNDS)
        return bbox.validate()
    except (KeyError, TypeError, ValueError):
        return None


def _bbox_from_drawing(drawing: dict | None) -> BoundingBox | None:
    """Bounding box of a drawn rectangle (GeoJSON Feature, [lon, lat] ring)."""
    if not drawing:
        return None
    try:
        ring = drawing["geometry"]["coordinates"][0]
        lons = [float(pt[0]) for pt in ring]
        lats = [float(pt[1]) for pt in ring]
        return BoundingBox(
            north=max(lats), south=min(lats), east=max(lons), west=min(lons)
        ).validate()
    except (KeyError, IndexError, TypeError, ValueError):
        return None


# ─────────────────────────────────────────────────────────────────────────────
# LAYER PREPARATION
# ─────────────────────────────────────────────────────────────────────────────

def build_grid_geojson(result: GridResult, zoom: int) -> dict[str, Any]:
    """GeoJSON rectangles for each grid cell, sized for the current zoom."""
    if not result.cells:
        return {"type": "FeatureCollection", "features": []}

    colormap = result.colormap
    features: list[dict] = []
    for cell in result.cells:
        cb = cell_bounds(cell.lat, cell.lon, zoom)
        features.append({
            "type": "Feature",
            "geometry": {
                "type": "Polygon",
                "coordinates": [[
                    [cb.west, cb.south], [cb.east, cb.south],
                    [cb.east, cb.north], [cb.west, cb.north],
                    [cb.west, cb.south],
                ]],
            },
            "properties": {
                "similarity": round(cell.similarity, 4),
                "_color": value_to_color(cell.similarity, colormap),
            },
        })
    return {"type": "FeatureCollection", "features": features}


# ─────────────────────────────────────────────────────────────────────────────
# MAP CONSTRUCTION
# ─────────────────────────────────────────────────────────────────────────────

def make_map(
    geojson: dict[str, Any],
    colormap: str | None,
    selected_bbox: BoundingBox | None,
    search_result: SearchResult | None,
    center: tuple[float, float],
    zoom: int,
) -> folium.Map:
    """
    Build the Folium map: grid overlay, selected bbox (yellow), top-K boxes
    (red) and a rectangle draw tool for picking the search area.
    """
    m = folium.Map(
        location=list(center),
        zoom_start=zoom,
        min_zoom=MIN_ZOOM,
        max_zoom=MAX_ZOOM,
        max_bounds=True,
        min_lat=SWITZERLAND_BOUNDS.south,
        max_lat=SWITZERLAND_BOUNDS.north,
        min_lon=SWITZERLAND_BOUNDS.west,
        max_lon=SWITZERLAND_BOUNDS.east,
        tiles="OpenStreetMap",
        prefer_canvas=True,
    )

    if geojson["features"]:
        folium.GeoJson(
            data=json.dumps(geojson),
            name="Similarity grid",
            style_function=lambda feature: {
                "fillColor":   feature["properties"]["_color"],
                "color":       "#000000",
                "weight":      0.3,
                "fillOpacity": 0.6,
            },
            tooltip=folium.GeoJsonTooltip(fields=["similarity"], aliases=["Similarity"]),
        ).add_to(m)
        if colormap:
            _add_legend(m, colormap)

    if selected_bbox is not None:
        folium.Rectangle(
            bounds=[[selected_bbox.south, selected_bbox.west], [selected_bbox.north, selected_bbox.east]],
            color="yellow",
            weight=2,
            fill=False,
        ).add_to(m)

    if search_result is not None:
        for rank, (box, sim) in enumerate(zip(search_result.top_k_cells, search_result.similarities), 1):
            folium.Rectangle(
                bounds=[[box.south, box.west], [box.north, box.east]],
                color="red",
                weight=2,
                fill=True,
                fill_opacity=0.25,
                tooltip=f"#{rank} · similarity {sim:.3f}",
            ).add_to(m)

    Draw(
        export=False,
        draw_options={
            "polyline": False, "polygon": False, "circle": False,
            "marker": False, "circlemarker": False, "rectangle": True,
        },
        edit_options={"edit": False},
    ).add_to(m)
    return m


def _add_legend(m: folium.Map, colormap: str) -> None:
    """Inject a simple gradient HTML legend into the Folium map."""
    gradient = ", ".join(c for _, c in COLORMAPS[colormap])
    html = f"""
    <div style="
        position: fixed; bottom: 30px; right: 30px; z-index: 9999;
        background: white; padding: 10px 14px; border-radius: 6px;
        box-shadow: 0 2px 6px rgba(0,0,0,.35); font-size: 12px;
    ">
      <b>Similarity</b><br>
      <div style="
        width: 160px; height: 14px; margin-top: 4px;
        background: linear-gradient(to right, {gradient});
        border-radius: 3px;
      "></div>
      <div style="display:flex; justify-content:space-between; margin-top:2px;">
        <span>low</span><span>high</span>
      </div>
    </div>
    """
    m.get_root().html.add_child(folium.Element(html))


# ─────────────────────────────────────────────────────────────────────────────
# STREAMLIT UI
# ─────────────────────────────────────────────────────────────────────────────

def render_sidebar() -> tuple[list[str], int, float, str]:
    """
    Returns:
        (lenses, top_k, output_size_km, normalization)
    """
    st.sidebar.title("🗺️ Lens Similarity Explorer")
    st.sidebar.markdown("Switzerland · per-lens similarity grid")
    st.sidebar.divider()

    lenses = st.sidebar.multiselect(
        "Lenses",
        options=[lens.value for lens in Lens],
        format_func=lambda v: LENS_LABELS[Lens(v)],
        help="One lens uses its own colormap; several lenses are averaged per cell.",
    )
    normalization = st.sidebar.radio(
        "Normalization",
        options=["percentile", "minmax"],
        format_func=lambda v: "1st–99th percentile clip" if v == "percentile" else "Min / max",
        horizontal=True,
    )

    st.sidebar.divider()
    st.sidebar.subheader("Top-K search")
    top_k = int(st.sidebar.number_input("Top K", min_value=1, max_value=50, value=DEFAULT_TOP_K))
    output_km = float(st.sidebar.number_input(
        "Output size (km)", min_value=0.1, max_value=100.0, value=DEFAULT_OUTPUT_KM, step=0.5,
    ))
    st.sidebar.caption("Draw a rectangle on the map to choose the search area.")
    return lenses, top_k, output_km, normalization


def render_results(result: SearchResult | None) -> None:
    st.markdown("### 🏆 Top-K results")
    if result is None:
        st.info("Draw a bounding box and run a search.")
        return
    if not result.top_k_cells:
        st.warning("The backend returned no matching cells.")
        return

    rows: list[dict] = []
    for rank, (box, sim, lens_sim) in enumerate(
        zip(result.top_k_cells, result.similarities, result.lens_similarity), 1
    ):
        row = {
            "rank": rank,
            "similarity": round(sim, 4),
            "center_lat": round((box.north + box.south) / 2, 5),
            "center_lon": round((box.east + box.west) / 2, 5),
        }
        for lens_name, value in lens_sim.items():
            row[f"{lens_name}_similarity"] = round(value, 4)
        rows.append(row)
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def main() -> None:
    st.set_page_config(
        page_title="Lens Similarity Explorer",
        page_icon="🗺️",
        layout="wide",
        initial_sidebar_state="expanded",
    )

    # ── Session state defaults ────────────────────────────────────────────────
    ss = st.session_state
    ss.setdefault("view_bounds",   SWITZERLAND_BOUNDS)
    ss.setdefault("zoom",          MAP_ZOOM)
    ss.setdefault("center",        SWITZERLAND_CENTER)
    ss.setdefault("selected_bbox", None)
    ss.setdefault("search_result", None)

    lenses, top_k, output_km, normalization = render_sidebar()

    # ── Grid data for the current viewport snapshot ───────────────────────────
    result: GridResult | None = None
    if lenses:
        vb: BoundingBox = ss["view_bounds"]
        try:
            result = load_grid(tuple(lenses), (vb.north, vb.south, vb.east, vb.west), normalization)
        except LensGridError as e:
            st.sidebar.error(f"{e.name}: {e}")

    if result is not None:
        geojson = build_grid_geojson(result, ss["zoom"])
        colormap = result.colormap
    else:
        geojson = {"type": "FeatureCollection", "features": []}
        colormap = None

    folium_map = make_map(
        geojson, colormap, ss["selected_bbox"], ss["search_result"], ss["center"], ss["zoom"],
    )

    col_map, col_stats = st.columns([3, 1], gap="medium")

    with col_map:
        status = f"zoom **{ss['zoom']}**"
        if result is not None:
            status = f"**{len(result.cells):,}** cells · lenses **{', '.join(lens.value for lens in result.lenses)}** · " + status
        st.caption(status)

        map_data = st_folium(
            folium_map,
            key="main_map",
            use_container_width=True,
            height=MAP_HEIGHT,
            returned_objects=["bounds", "zoom", "center", "last_active_drawing"],
        )

    # ── Viewport / drawing changes → rerun with new snapshot ──────────────────
    if map_data:
        changed = False
        new_bounds = _bounds_from_folium(map_data.get("bounds"))
        if new_bounds is not None and new_bounds != ss["view_bounds"]:
            ss["view_bounds"] = new_bounds
            changed = True
        new_zoom = map_data.get("zoom")
        if new_zoom is not None and int(new_zoom) != ss["zoom"]:
            ss["zoom"] = int(new_zoom)
            changed = True
        center = map_data.get("center")
        if center:
            ss["center"] = (float(center["lat"]), float(center["lng"]))
        drawn = _bbox_from_drawing(map_data.get("last_active_drawing"))
        if drawn is not None and drawn != ss["selected_bbox"]:
            ss["selected_bbox"] = drawn
            changed = True
        if changed:
            st.rerun()

    with col_stats:
        st.markdown("### 📐 Selected area")
        bbox: BoundingBox | None = ss["selected_bbox"]
        if bbox is None:
            st.info("No bounding box drawn yet.")
        else:
            st.json(bbox.to_dict())

        if st.button("🔍 Search top-K", use_container_width=True,
                     disabled=bbox is None or not lenses):
            try:
                ss["search_result"] = search_top_k(SearchRequest(
                    bounding_box=bbox,
                    top_k=top_k,
                    output_size_deg=output_size_km_to_degrees(output_km, bbox.center[0]),
                    lenses=[Lens(v) for v in lenses],
                ))
                st.rerun()
            except LensGridError as e:
                st.error(f"{e.name}: {e}")

        if st.button("↩ Clear selection", use_container_width=True,
                     disabled=bbox is None and ss["search_result"] is None):
            ss["selected_bbox"] = None
            ss["search_result"] = None
            st.rerun()

        if result is not None and result.cells and st.button(
            "🖼️ Prepare snapshot", use_container_width=True,
        ):
            png = get_renderer().render(
                ss["view_bounds"],
                ss["zoom"],
                result.cells,
                result.colormap,
                bbox=bbox,
                highlighted=ss["search_result"].top_k_cells if ss["search_result"] else (),
            )
            st.download_button(
                "🖼️ Download snapshot (PNG)",
                data=png,
                file_name="lens_grid.png",
                mime="image/png",
                use_container_width=True,
            )

    st.divider()
    render_results(ss["search_result"])


if __name__ == "__main__":
    main()
