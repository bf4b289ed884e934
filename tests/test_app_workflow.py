"""Workflow tests for the Streamlit host using the AppTest framework.

The real app.main() runs inside AppTest. Two seams are replaced per run:
- the provider source comes from session_state, so a test controls the data
- the deck.gl component is replaced by a click queue, so a test can click
  markers the way st_deckgl would report them

Flow covered:
    1. Demo providers load, the list header shows the count
    2. Type filter -> set_filters -> shorter list and updated URL
    3. Marker click -> dispatch_click -> selection and detail card
    4. Fetch failure -> error + Retry -> providers back
    5. UI failure -> error fallback + Reset map -> fresh session
"""

from __future__ import annotations

import pytest
from streamlit.testing.v1 import AppTest

from cityhealth_map.constants import MapMode, ProviderType
from cityhealth_map.core.provider_source import InMemoryProviderSource, ProviderFetchError, demo_provider_records
from cityhealth_map.core.query_params import decode_filters

RECORDS = demo_provider_records()


# =============================================================================
# APP RUNNER
# =============================================================================


def run_app_with_click_queue() -> None:
    """Streamlit script: app.main() with a test provider source and click queue.

    SESSION STATE INPUTS:
        provider_source: InMemoryProviderSource used by init_session_state()
        click_queue: st_deckgl events, one is reported per run
        break_provider_list: make the provider list raise (error fallback)
    """
    from contextlib import ExitStack
    from unittest.mock import patch

    import streamlit as st

    from cityhealth_map import app
    from cityhealth_map.ui.pydeck_click_handler import parse_deckgl_event

    def queued_click(deck, key, height):
        queue = st.session_state.get("click_queue", [])
        if not queue:
            return None
        event = queue.pop(0)
        st.session_state.click_queue = queue
        return parse_deckgl_event(event)

    with ExitStack() as stack:
        stack.enter_context(patch.object(app, "render_pydeck_map", side_effect=queued_click))
        stack.enter_context(
            patch.object(app, "create_provider_source", return_value=st.session_state.provider_source)
        )
        if st.session_state.get("break_provider_list"):
            stack.enter_context(patch.object(app, "render_provider_list", side_effect=RuntimeError("list broke")))
        app.main()


# =============================================================================
# FIXTURES AND HELPERS
# =============================================================================


@pytest.fixture
def source() -> InMemoryProviderSource:
    return InMemoryProviderSource.from_records(RECORDS)


@pytest.fixture
def at(source: InMemoryProviderSource) -> AppTest:
    at = AppTest.from_function(run_app_with_click_queue, default_timeout=30)
    at.session_state["provider_source"] = source
    at.session_state["click_queue"] = []
    at.run()
    return at


def list_header(at: AppTest) -> str:
    headers = [h.value for h in at.subheader if h.value.startswith(MapMode.TITLES[MapMode.PROVIDERS])]
    assert len(headers) == 1
    return headers[0]


def click_button(at: AppTest, label: str) -> None:
    buttons = [b for b in at.button if b.label == label]
    assert buttons, f"No button labelled {label!r}"
    buttons[0].click().run()


# =============================================================================
# TESTS
# =============================================================================


class TestAppWorkflow:
    """The host wires widgets, clicks and failures into MapSession."""

    def test_demo_providers_listed(self, at: AppTest) -> None:
        assert not at.exception
        session = at.session_state["map_session"]
        assert len(session.display_entities) == len(RECORDS)
        assert list_header(at) == f"{MapMode.TITLES[MapMode.PROVIDERS]} ({len(RECORDS)})"
        assert session.lifecycle.is_ready

    def test_type_filter_narrows_list_and_url(self, at: AppTest) -> None:
        pharmacies = sum(1 for r in RECORDS if r["type"] == ProviderType.PHARMACY)
        assert 0 < pharmacies < len(RECORDS)

        at.multiselect(key="filter_types").set_value([ProviderType.PHARMACY]).run()

        session = at.session_state["map_session"]
        assert {d.type for d in session.display_entities} == {ProviderType.PHARMACY}
        assert list_header(at).endswith(f"({pharmacies})")
        assert decode_filters(at.query_params).types == frozenset({ProviderType.PHARMACY})

    def test_marker_click_selects_provider(self, at: AppTest) -> None:
        target = at.session_state["map_session"].display_entities[0]
        at.session_state["click_queue"] = [
            {"type": "provider", "id": target.id, "group_id": MapMode.PROVIDERS, "coordinate": [0.0, 0.0]}
        ]
        at.run()

        session = at.session_state["map_session"]
        assert session.selection.selected_id == target.id
        assert any(h.value == target.display_name for h in at.subheader)

    def test_fetch_failure_then_retry(self, source: InMemoryProviderSource) -> None:
        def failing_loader():
            raise ProviderFetchError("upstream down")

        source.set_loader(failing_loader)
        at = AppTest.from_function(run_app_with_click_queue, default_timeout=30)
        at.session_state["provider_source"] = source
        at.run()

        assert any("upstream down" in e.value for e in at.error)
        assert at.session_state["map_session"].display_entities == []

        source.set_loader(lambda: RECORDS)
        click_button(at, "🔄 Retry")
        assert not any("upstream down" in e.value for e in at.error)
        assert len(at.session_state["map_session"].display_entities) == len(RECORDS)

    def test_ui_error_fallback_and_reset(self, at: AppTest) -> None:
        old_session = at.session_state["map_session"]
        at.session_state["break_provider_list"] = True
        at.run()

        assert any("Something went wrong" in e.value and "list broke" in e.value for e in at.error)

        # The reset button only exists while the UI keeps failing
        click_button(at, "🔄 Reset map")
        assert at.session_state["map_session"] is not old_session

        at.session_state["break_provider_list"] = False
        at.run()
        assert not at.error
        assert list_header(at).endswith(f"({len(RECORDS)})")
