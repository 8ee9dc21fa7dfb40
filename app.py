import streamlit as st
import matplotlib.pyplot as plt

from sideview_builder.calibration import FIELD_NAMES, CalibrationError, load_calibration_table
from sideview_builder.config import DEFAULT_CONFIG, DEFAULT_WORLD_BOUNDS, DETECTOR_CONFIG
from sideview_builder.export import frame_to_csv_bytes, side_view_figure, side_view_to_png_bytes
from sideview_builder.registry import ElementRegistry, build_registry

# Signature info for the downloadable image
IMAGE_BUILDER_NAME = "Detector Side View Builder"

st.set_page_config(
    page_title="Detector Full Side View",
    page_icon="🧭",
    layout="wide",
)

st.title("Detector Full Side View")

st.markdown(
    """
The side view shows the **3 × 3 scintillator bar matrix** surrounded by the
crystal(s) and the **internal and external veto rings**.

Each element is annotated with the constants read from its calibration file:
- effective velocity, left/right ADC and TDC conversion factors,
- attenuation length, left/right shifts, element length.

Bars are numbered `b1`–`b9` (row-major, top row first); crystals and vetoes
share one numbering `v1`, `v2`, ... around the rings.
"""
)

# --------------------------------------------------------
# SIDEBAR: CONFIGURATION AND CALIBRATION SOURCE
# --------------------------------------------------------
st.sidebar.header("Detector Configuration")
config_names = list(DETECTOR_CONFIG)
config_name = st.sidebar.radio(
    "Configuration",
    config_names,
    index=config_names.index(DEFAULT_CONFIG),
)
st.sidebar.info(DETECTOR_CONFIG[config_name]["info"])

st.sidebar.header("Calibration")
uploaded = st.sidebar.file_uploader(
    "Calibration file (optional)",
    type=["txt", "dat", "cal"],
    help="Overrides the configured calibration file.",
)
strict = st.sidebar.checkbox(
    "Validate tag order (strict)",
    value=True,
    help="Reject files whose tags do not list every element in order.",
)
annotate = st.sidebar.checkbox("Annotate elements", value=True)

calibration_lines = None
if uploaded is not None:
    try:
        calibration_lines = uploaded.getvalue().decode("utf-8").splitlines()
    except UnicodeDecodeError:
        st.error("The uploaded calibration file is not valid UTF-8 text.")
        st.stop()


# --------------------------------------------------------
# BUILD REGISTRY (layout + lazily loaded calibration)
# --------------------------------------------------------
@st.cache_resource
def cached_registry(name: str) -> ElementRegistry:
    return build_registry(name, bounds=DEFAULT_WORLD_BOUNDS)


base = cached_registry(config_name)
registry = ElementRegistry(
    base.name,
    base.layout,
    calibration_source=calibration_lines if calibration_lines is not None else base.calibration_source,
    strict=strict,
    info=base.info,
)

calibration_df = None
if registry.calibration_source is not None:
    try:
        calibration_df = load_calibration_table(
            registry.calibration_source, counts=registry.counts, strict=strict
        )
    except CalibrationError as e:
        st.error(f"Calibration file rejected: {e}")
        registry = ElementRegistry(base.name, base.layout, info=base.info)
else:
    st.warning("No calibration file available; elements are shown without calibration constants.")

# --------------------------------------------------------
# SIDEBAR: HIT TEST
# --------------------------------------------------------
st.sidebar.header("Locate a World Point")
b = registry.layout.bounds
px = st.sidebar.number_input("x", min_value=b.x, max_value=b.max_x, value=b.center[0], step=0.01, format="%.4f")
py = st.sidebar.number_input("y", min_value=b.y, max_value=b.max_y, value=b.center[1], step=0.01, format="%.4f")

located = registry.locate(px, py)

# --------------------------------------------------------
# DISPLAY
# --------------------------------------------------------
col_plot, col_stats = st.columns([3, 1])

with col_plot:
    st.subheader(f"Full Side View – {config_name}")
    st.caption(
        f"Bars: {len(registry.bars)} | Vetoes: {len(registry.vetoes)} | "
        f"World: {b.width:g} × {b.height:g}"
    )
    fig = side_view_figure(
        registry,
        title=f"Full Side View ({config_name})",
        annotate=annotate,
        highlight=located.tag if located is not None else None,
    )
    ax = fig.axes[0]
    ax.plot([px], [py], marker="+", color="red", markersize=10)
    st.pyplot(fig)
    plt.close(fig)

with col_stats:
    st.subheader("Located Element")
    st.write(f"**Point:** ({px:.4f}, {py:.4f})")
    if located is None:
        st.write("Outside every bar and veto.")
    else:
        st.write(f"**Element:** {located.tag}")
        r = located.rect
        st.write(f"**Region:** x={r.x:.4f}, y={r.y:.4f}, w={r.width:.4f}, h={r.height:.4f}")
        if located.is_calibrated:
            try:
                record = located.calibration
            except CalibrationError as e:
                st.error(str(e))
            else:
                st.markdown("---")
                for name in FIELD_NAMES:
                    st.write(f"**{name}:** {getattr(record, name):g}")

st.markdown("---")
st.subheader("Elements")
table = registry.layout.to_frame()
if calibration_df is not None:
    table = table.merge(calibration_df, on="tag", how="left")
st.dataframe(table)

# --------------------------------------------------------
# DOWNLOAD BUTTONS
# --------------------------------------------------------
st.subheader("Download")

st.download_button(
    label="Download element table CSV",
    data=frame_to_csv_bytes(table),
    file_name=f"side_view_{config_name}.csv",
    mime="text/csv",
)

st.download_button(
    label="Download side view image (PNG)",
    data=side_view_to_png_bytes(
        registry,
        title=f"Full Side View ({config_name})",
        signature=f"{IMAGE_BUILDER_NAME} | {config_name}",
        annotate=annotate,
    ),
    file_name=f"side_view_{config_name}.png",
    mime="image/png",
)
