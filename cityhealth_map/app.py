"""CityHealth - interactive health-care provider map.

Browse providers around Sidi Bel Abbès in three map modes (all providers,
emergency, blood donation) on one shared, clustered map. Filters are mirrored
into the URL so a shared link reproduces the view.

Run: streamlit run cityhealth_map/app.py
"""

import logging
import traceback

import streamlit as st

from cityhealth_map.constants import PROVIDERS_JSON_PATH, AppConfig, MapMode, ProviderType, TileConfig
from cityhealth_map.core.filter_pipeline import ProviderFilters
from cityhealth_map.core.geo_calculator import GeoCalculator
from cityhealth_map.core.geolocation import GeolocationError
from cityhealth_map.core.provider_source import InMemoryProviderSource, demo_provider_records
from cityhealth_map.core.query_params import decode_filters
from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.model.provider import DisplayEntity
from cityhealth_map.ui import MapLifecycleManager, MapSession, PydeckMapBackend
from cityhealth_map.ui.infra import bump_map_version, read_query_params, trigger_rerun, write_query_params
from cityhealth_map.ui.pydeck_click_handler import render_pydeck_map

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

LIST_LIMIT = 25


# =============================================================================
# SESSION STATE
# =============================================================================


def create_provider_source() -> InMemoryProviderSource:
    """Providers from data/providers.json, or generated demo data."""
    if PROVIDERS_JSON_PATH.exists():
        logger.info(f"[DATA] Loading providers from {PROVIDERS_JSON_PATH}")
        return InMemoryProviderSource.from_json(PROVIDERS_JSON_PATH)
    logger.info("[DATA] No providers file, using demo providers")
    return InMemoryProviderSource.from_records(demo_provider_records())


def init_session_state() -> None:
    """Create the map session once per browser session."""
    if "map_session" not in st.session_state:
        filters = decode_filters(read_query_params())
        st.session_state.map_session = MapSession(
            source=create_provider_source(),
            backend=PydeckMapBackend(),
            filters=filters,
        )
        st.session_state.filter_mode = filters.mode
        st.session_state.filter_query = filters.query
        st.session_state.filter_types = sorted(filters.types)
        st.session_state.filter_open_now = filters.open_now

    if "map_version" not in st.session_state:
        st.session_state.map_version = 0


# =============================================================================
# SIDEBAR
# =============================================================================


def render_sidebar(session: MapSession) -> None:
    """Mode, filters, theme and location controls."""
    with st.sidebar:
        st.header("Map")
        st.radio(
            "Mode",
            options=MapMode.ALL,
            format_func=lambda m: MapMode.TITLES[m],
            key="filter_mode",
        )
        st.text_input("Search", placeholder="Name, address, specialty...", key="filter_query")
        st.multiselect(
            "Provider types",
            options=ProviderType.ALL,
            format_func=lambda t: ProviderType.DISPLAY_NAMES[t],
            key="filter_types",
        )
        st.checkbox("Open now", key="filter_open_now")

        session.set_filters(
            ProviderFilters(
                mode=st.session_state.filter_mode,
                query=st.session_state.filter_query,
                types=frozenset(st.session_state.filter_types),
                open_now=st.session_state.filter_open_now,
            )
        )
        write_query_params(session.query_params())

        st.divider()
        dark = st.toggle("Dark map", value=session.lifecycle.context.theme == TileConfig.DARK)
        session.set_theme(TileConfig.DARK if dark else TileConfig.LIGHT)
        rtl = st.toggle("Right-to-left layout", value=session.lifecycle.context.rtl)
        session.lifecycle.set_rtl(rtl)

        st.divider()
        render_location_controls(session)


def render_location_controls(session: MapSession) -> None:
    """Stand-in for browser geolocation: the user enters a position."""
    st.subheader("📍 My location")
    geo = session.geolocation
    lat = st.number_input("Latitude", value=35.2000, format="%.5f", min_value=-90.0, max_value=90.0)
    lon = st.number_input("Longitude", value=-0.6350, format="%.5f", min_value=-180.0, max_value=180.0)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Use position", width="stretch"):
            geo.resolve(Coordinates(lat=lat, lon=lon))
            session.locate_user()
            trigger_rerun()
    with col2:
        if st.button("Forget", width="stretch", disabled=not geo.state.has_location):
            geo.clear()
            trigger_rerun()

    if geo.state.error:
        st.caption(GeolocationError.message(geo.state.error))
    elif geo.state.has_location:
        st.caption(f"Using {geo.position}")


# =============================================================================
# MAP
# =============================================================================


def render_map(session: MapSession) -> None:
    """Mount the shared surface, draw the deck and route clicks."""
    backend: PydeckMapBackend = session.lifecycle.backend
    container = st.container()
    if not session.mount(container):
        st.info("Preparing map...")
        return

    if session.data_error:
        st.error(f"⚠️ Could not load providers: {session.data_error}")
        if st.button("🔄 Retry", type="primary"):
            session.retry()
            trigger_rerun()

    col_full, col_fit = st.columns([1, 1])
    with col_full:
        label = "Exit full screen" if session.lifecycle.context.fullscreen else "Full screen"
        if st.button(label, width="stretch"):
            session.lifecycle.toggle_fullscreen()
            bump_map_version()
            trigger_rerun()
    with col_fit:
        if st.button("Fit all providers", width="stretch", disabled=not session.display_entities):
            session.lifecycle.fit_bounds([d.coordinates for d in session.display_entities])
            trigger_rerun()

    height = AppConfig.MAP_HEIGHT_PX * 3 // 2 if session.lifecycle.context.fullscreen else AppConfig.MAP_HEIGHT_PX
    surface = session.lifecycle.require_surface()
    with container:
        click = render_pydeck_map(
            deck=backend.to_deck(),
            key=f"provider_map_{st.session_state.map_version}_{surface.size_generation}",
            height=height,
        )

    if click is not None and click.is_object_click and backend.dispatch_click(click.picked):
        trigger_rerun()

    for issue in session.issues:
        st.caption(issue.message)


# =============================================================================
# LIST AND DETAIL
# =============================================================================


def render_provider_row(session: MapSession, display: DisplayEntity) -> None:
    icon = "✅" if display.is_selected else ""
    distance = GeoCalculator.format_distance(display.distance_from_user_km)
    text = f"{icon} **{display.display_name}**  \n{ProviderType.DISPLAY_NAMES.get(display.type, display.type)}"
    if distance:
        text += f" · {distance}"
    col_text, col_btn = st.columns([4, 1])
    with col_text:
        st.markdown(text)
    with col_btn:
        if st.button("Show", key=f"show_{display.id}"):
            session.select_provider(display.id)
            trigger_rerun()


def render_detail_card(session: MapSession) -> None:
    entity = session.selected_entity
    if entity is None:
        return
    with st.container(border=True):
        st.subheader(entity.display_name)
        st.caption(ProviderType.DISPLAY_NAMES.get(entity.type, entity.type))
        st.write(entity.address)
        if entity.specialty:
            st.write(entity.specialty)
        if entity.phone:
            st.write(f"📞 {entity.phone}")
        st.write("🟢 Open now" if entity.is_open_now else "🔴 Closed")
        if entity.blood_types:
            st.write(f"🩸 {', '.join(entity.blood_types)}" + (" - urgent need" if entity.urgent_need else ""))
        st.link_button("Directions", MapLifecycleManager.directions_url(entity))
        if st.button("Close", key="close_detail"):
            session.select_provider(None)
            trigger_rerun()


def render_provider_list(session: MapSession) -> None:
    st.subheader(f"{MapMode.TITLES[session.mode]} ({len(session.display_entities)})")
    render_detail_card(session)
    for display in session.display_entities[:LIST_LIMIT]:
        render_provider_row(session, display)
    if len(session.display_entities) > LIST_LIMIT:
        st.caption(f"... and {len(session.display_entities) - LIST_LIMIT} more on the map")


# =============================================================================
# MAIN
# =============================================================================


def _run_app_ui() -> None:
    session: MapSession = st.session_state.map_session
    render_sidebar(session)

    col_map, col_list = st.columns([3, 1])
    with col_map:
        render_map(session)
    with col_list:
        render_provider_list(session)


def main() -> None:
    """Application entry point."""
    st.set_page_config(page_title=AppConfig.TITLE, page_icon=AppConfig.ICON, layout=AppConfig.LAYOUT)
    st.title(f"{AppConfig.ICON} {AppConfig.TITLE}")

    try:
        init_session_state()
        _run_app_ui()
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        logger.error(f"[UI] UI error caught: {error_msg}\n{traceback.format_exc()}")
        st.error(f"⚠️ Something went wrong: {error_msg}")
        if st.button("🔄 Reset map", type="primary"):
            st.session_state.pop("map_session", None)
            bump_map_version()
            st.rerun()


if __name__ == "__main__":
    main()
