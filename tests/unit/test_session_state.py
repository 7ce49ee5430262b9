# =============================================================================
# tests/unit/test_session_state.py
# Unit Tests for Streamlit Session Glue
# =============================================================================

import pytest


class TestSessionStateStorage:
    """Test flag storage on st.session_state"""

    def test_flags_live_in_session_state(self, mock_streamlit):
        from finance_core.offline.session_flags import SessionFlags
        from finance_core.state.session import SessionStateStorage

        flags = SessionFlags(SessionStateStorage())
        flags.set("db_auth_error")

        assert mock_streamlit.session_state["db_auth_error"] == "true"
        assert flags.is_set("db_auth_error")

        flags.clear_error_flags()
        assert "db_auth_error" not in mock_streamlit.session_state

    def test_non_string_values_are_ignored(self, mock_streamlit):
        from finance_core.state.session import SessionStateStorage

        mock_streamlit.session_state["data_layer_ready"] = True
        mock_streamlit.session_state["theme"] = "dark"
        storage = SessionStateStorage()

        assert storage.get_item("data_layer_ready") is None
        assert storage.keys() == ["theme"]


class TestSessionHelpers:
    """Test init/clear helpers"""

    def test_init_state_keeps_existing(self, mock_streamlit):
        from finance_core.state.session import init_state

        mock_streamlit.session_state["user_id"] = "u1"
        init_state()

        assert mock_streamlit.session_state["user_id"] == "u1"
        assert mock_streamlit.session_state["data_layer_ready"] is False

    def test_current_user_id(self, mock_streamlit):
        from finance_core.state.session import current_user_id

        assert current_user_id() is None
        mock_streamlit.session_state["user_id"] = 42
        assert current_user_id() == "42"

    def test_request_rerun(self, mock_streamlit):
        from finance_core.state.session import request_rerun

        request_rerun()

        mock_streamlit.rerun.assert_called_once()

    def test_clear_session_and_cache(self, mock_streamlit, cache_store):
        from finance_core.offline.cache_store import CacheKey, EntityKind
        from finance_core.state.session import clear_session_and_cache

        cache_store.put(CacheKey(EntityKind.ASSETS, "u1"), [])
        mock_streamlit.session_state.update({"user_id": "u1", "db_schema_error": "true"})

        clear_session_and_cache(cache_store)

        assert cache_store.stats().entry_count == 0
        assert mock_streamlit.session_state["user_id"] == "u1"
        assert "db_schema_error" not in mock_streamlit.session_state
        assert mock_streamlit.session_state["show_offline_banner"] is False
