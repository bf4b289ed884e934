"""Infrastructure utilities for Streamlit UI operations.

This module wraps Streamlit-specific infrastructure (st.rerun, st.session_state,
st.query_params) so tests can patch these functions instead of Streamlit.

IMPORTANT: Only infrastructure belongs here (rerun, map version, query string).
The MapSession itself lives in session state and is created by app.py.
"""

import logging

import streamlit as st

logger = logging.getLogger(__name__)


def trigger_rerun(scope: str = "app") -> None:
    """Trigger Streamlit rerun with optional scope.

    In tests, patch 'cityhealth_map.ui.infra.trigger_rerun' to prevent
    actual reruns (which raise StopExecution).
    """
    st.rerun(scope=scope)


def bump_map_version() -> None:
    """Increment map_version to create a fresh deck.gl component.

    A new component instance has no memory of previous click events, which
    stops an old click from being replayed after a rerun.
    """
    old_version = st.session_state.get("map_version", 0)
    new_version = old_version + 1
    st.session_state.map_version = new_version
    logger.info(f"[MAP] Bumped map_version: {old_version} -> {new_version}")


def read_query_params() -> dict[str, str]:
    """Current page query string as a plain dict."""
    return st.query_params.to_dict()


def write_query_params(params: dict[str, str]) -> None:
    """Mirror params into the page query string (only when they changed)."""
    if read_query_params() == params:
        return
    st.query_params.clear()
    st.query_params.update(params)
    logger.debug(f"[MAP] Query string updated: {params}")
