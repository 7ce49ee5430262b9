import streamlit as st
from typing import List, Optional

from finance_core.offline.cache_store import LocalCacheStore
from finance_core.offline.storage import KeyValueStorage

# Central registry for session-state keys used across the app.
SESSION_DEFAULTS = {
    "user_id": None,
    "user_email": None,
    "data_layer_ready": False,
    "show_offline_banner": False,
}

AUTH_KEYS = ["authenticated", "user_id", "user_email", "access_token"]


class SessionStateStorage(KeyValueStorage):
    """
    String storage on st.session_state, scoped to one browser session.

    Holds the db_* error flags so they reset when the user opens a new tab.
    """

    def get_item(self, key: str) -> Optional[str]:
        value = st.session_state.get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        st.session_state[key] = value

    def remove_item(self, key: str) -> None:
        if key in st.session_state:
            del st.session_state[key]

    def keys(self) -> List[str]:
        return [k for k in list(st.session_state.keys()) if isinstance(st.session_state[k], str)]


def init_state():
    """Initialize session state with defaults."""
    for k, v in SESSION_DEFAULTS.items():
        if k not in st.session_state:
            st.session_state[k] = v


def current_user_id() -> Optional[str]:
    user_id = st.session_state.get("user_id")
    return str(user_id) if user_id else None


def request_rerun():
    """Reload the app after a connection reset."""
    st.rerun()


def clear_session_and_cache(cache: Optional[LocalCacheStore] = None):
    """Clear session state (except auth) and, when given, every cached entity."""
    if cache is not None:
        cache.purge_all()

    for key in list(st.session_state.keys()):
        if key not in AUTH_KEYS:
            del st.session_state[key]

    # Re-initialize defaults
    for k, v in SESSION_DEFAULTS.items():
        if k not in st.session_state:
            st.session_state[k] = v
