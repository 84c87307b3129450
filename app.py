import streamlit as st

from flight_overlay.domain import OverlayConfig, to_fixed
from flight_overlay.igc import load_track
from flight_overlay.analyze import analyze
from flight_overlay.assemble import rows_to_frame
from flight_overlay.render import make_overlay_figure

# -----------------------------
# Streamlit page setup
# -----------------------------
st.set_page_config(page_title="Flight Overlay", layout="wide")
st.title("🪂 Flight Overlay: terrain clearance and progressive XC score")
st.write("Upload an IGC file to get ground elevation, AGL and the running best XC score for every fix.")


# -----------------------------
# Sidebar: settings
# -----------------------------
defaults = OverlayConfig.from_env()

with st.sidebar:
    st.header("Settings")
    elevation_url = st.text_input("Elevation service URL", value=defaults.elevation_url)
    chunk_size = st.number_input("Fixes per scoring step", min_value=1, value=int(defaults.chunk_size), step=10)
    batch_size = st.number_input("Elevation batch size", min_value=1, value=int(defaults.elevation_batch_size), step=10)

config = OverlayConfig(
    elevation_url=elevation_url,
    elevation_batch_size=int(batch_size),
    chunk_size=int(chunk_size),
    request_timeout_s=defaults.request_timeout_s,
)


# -----------------------------
# Upload + preview
# -----------------------------
uploaded = st.file_uploader("Upload IGC", type=["igc"])

if uploaded is None:
    st.info("Upload an IGC file to begin.")
    st.stop()

track = load_track(uploaded.getvalue())
col1, col2 = st.columns(2)
col1.metric("Flight date", track.date or "N/A")
col2.metric("Fixes", len(track))

if len(track) == 0:
    st.warning("No usable fixes found (missing HFDTE date or B records).")
    st.stop()


# -----------------------------
# Run pipeline
# -----------------------------
progress = st.progress(0.0, text="Starting...")


def _on_progress(stage: str, processed: int, total: int) -> None:
    progress.progress(processed / total if total else 1.0, text=f"{stage}: {processed}/{total}")


result, err = analyze(track, config, on_progress=_on_progress)
progress.empty()

if err or result is None:
    st.error(err or "Processing failed (no result returned).")
    st.stop()


# -----------------------------
# Display results
# -----------------------------
last = result.windows[-1]
c1, c2, c3 = st.columns(3)
c1.metric("Final XC", last.route_label or "N/A")
c2.metric("Avg speed (km/h)", to_fixed(last.average_speed, 1))
c3.metric("Min AGL (m)", to_fixed(min(r.height_above_ground for r in result.rows)))

frame = rows_to_frame(result.rows, result.track.date)

st.subheader("Overlay plot")
fig = make_overlay_figure(result.track, result.rows)
st.pyplot(fig, clear_figure=True)

st.subheader("Per-fix series")
st.dataframe(frame, use_container_width=True)

st.download_button(
    "Download CSV",
    data=frame.to_csv(index=False).encode("utf-8"),
    file_name=f"{(uploaded.name.rsplit('.', 1)[0] or 'flight')}.csv",
    mime="text/csv",
)
