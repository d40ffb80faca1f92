import streamlit as st
from utils.constants import STATE_KEYS
from utils.location_gate import LocationChangeGate


def ensure_state():
    """Ensure default state values exist for this browser session."""
    defaults = {
        "location": None,
        "nearby_groups": [],
        "nearby_degraded": False,
        "nearby_stale": False,
        "discovery_session": None,
        "location_gate": LocationChangeGate(),
        "active_chat_id": None,
        "active_chat_name": "",
        "synchronizers": {},
        "current_user": None,
        "send_error": None,
    }
    for key in STATE_KEYS:
        st.session_state.setdefault(key, defaults[key])


def open_chat(chat_id: str, name: str):
    st.session_state.active_chat_id = chat_id
    st.session_state.active_chat_name = name
    st.session_state.send_error = None


def close_active_chat():
    for sync in st.session_state.synchronizers.values():
        sync.close()
    st.session_state.synchronizers = {}
    st.session_state.active_chat_id = None
    st.session_state.active_chat_name = ""
    st.session_state.send_error = None
