"""
Main Streamlit application for the FVU video recovery request form.
Dynamic DVR / time-frame form with drafts, validation and submission.
"""

import streamlit as st
import logging

from evidence_forms.config_loader import get_config, get_config_summary, get_config_value
from evidence_forms.error_handler import ErrorHandler, ErrorType
from evidence_forms.exceptions import FormDefinitionError
from evidence_forms.form_renderer import FormRenderer
from evidence_forms.session_manager import SessionManager
from evidence_forms.submission_handler import OutboxSubmissionClient
from evidence_forms.ui_feedback import show_loading


def get_logging_level(level_str):
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return level_map.get(str(level_str).upper(), logging.INFO)

# Configure logging dynamically from config
try:
    log_level_str = get_config_value('logging', 'level', 'INFO')
    log_level = get_logging_level(log_level_str)
    logging.basicConfig(level=log_level, format=get_config_value('logging', 'format'))
    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured to level: {log_level_str}")
except Exception as e:
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)
    logger.error(f"Failed to configure logging from config: {e}, using INFO level")

try:
    config = get_config()
    page_title = get_config_value('ui', 'page_title', 'FVU Recovery Request')
    logger.info(f"Starting app version: {get_config_value('app', 'version', 'Unknown')}")
    logger.info(f"Configuration summary: {get_config_summary(config)}")
except Exception as e:
    logger.error(f"Failed to load configuration: {e}")
    config = None
    page_title = "FVU Recovery Request"

st.set_page_config(
    page_title=page_title,
    page_icon="📹",
    layout="centered"
)


def main():
    """Main application entry point."""
    try:
        try:
            with show_loading("Preparing form..."):
                SessionManager.initialize(config)
        except FormDefinitionError as e:
            ErrorHandler.handle_error(e, "loading the form definition", ErrorType.FORM_DEFINITION)
            return
        session = SessionManager.get_form_session()

        # Mounts, deferred picker reads, debounced validation and autosave
        session.tick()

        client = OutboxSubmissionClient(get_config_value('submission', 'outbox_directory', 'outbox'))
        FormRenderer.render(session, client)

    except Exception as e:
        ErrorHandler.handle_error(
            e,
            "application startup",
            ErrorType.SYSTEM,
            recovery_options=ErrorHandler.create_recovery_options("system")
        )


if __name__ == "__main__":
    main()
