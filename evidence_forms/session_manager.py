"""
Session state management for the Streamlit request form.
Keeps one FormSession per browser session in st.session_state.
"""

import streamlit as st
from typing import Dict, Any, Optional
from datetime import datetime
import logging

from .form_session import FormSession

logger = logging.getLogger(__name__)

FORM_SESSION_KEY = 'form_session'


class SessionManager:
    """Manages Streamlit session state for the request form."""

    @staticmethod
    def initialize(config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize session state variables with default values (idempotent)."""
        defaults = {
            'session_id': None,
            'last_activity': datetime.now(),
            'submission_result': None,
            'validation_errors': [],
            'focus_field': None,
            'focus_pending': False,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if not st.session_state['session_id']:
            st.session_state['session_id'] = f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        if FORM_SESSION_KEY not in st.session_state:
            st.session_state[FORM_SESSION_KEY] = FormSession(config=config)
            logger.info(f"Session initialized: {st.session_state['session_id']}")

    @staticmethod
    def get_form_session() -> Optional[FormSession]:
        return st.session_state.get(FORM_SESSION_KEY)

    @staticmethod
    def update_activity() -> None:
        st.session_state['last_activity'] = datetime.now()

    @staticmethod
    def set_validation_errors(errors: Dict[str, str], focus_field: Optional[str] = None) -> None:
        st.session_state['validation_errors'] = [f"{address}: {message}" for address, message in errors.items()]
        st.session_state['focus_field'] = focus_field
        st.session_state['focus_pending'] = focus_field is not None

    @staticmethod
    def get_validation_errors() -> list:
        return st.session_state.get('validation_errors', [])

    @staticmethod
    def get_focus_field() -> Optional[str]:
        return st.session_state.get('focus_field')

    @staticmethod
    def consume_focus_request() -> bool:
        """True once after a blocked submit, so the page scrolls to the first invalid field only once."""
        pending = bool(st.session_state.get('focus_pending'))
        st.session_state['focus_pending'] = False
        return pending

    @staticmethod
    def clear_validation_errors() -> None:
        st.session_state['validation_errors'] = []
        st.session_state['focus_field'] = None
        st.session_state['focus_pending'] = False

    @staticmethod
    def set_submission_result(result: Any) -> None:
        st.session_state['submission_result'] = result

    @staticmethod
    def get_submission_result() -> Any:
        return st.session_state.get('submission_result')

    @staticmethod
    def reset_form_session(config: Optional[Dict[str, Any]] = None) -> FormSession:
        """Replace the form session with a fresh one."""
        st.session_state[FORM_SESSION_KEY] = FormSession(config=config)
        SessionManager.clear_validation_errors()
        logger.info("Form session replaced")
        return st.session_state[FORM_SESSION_KEY]
