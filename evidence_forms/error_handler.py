"""
Error handling for the request form page.
Maps engine and system errors to user-friendly messages and recovery actions.
"""

import streamlit as st
import logging
import traceback
from typing import Dict, Any, Optional, Callable, List

from .exceptions import DraftCorrupt, FormDefinitionError, StructuralOperationInvalid, WidgetNotReady
from .session_manager import SessionManager

logger = logging.getLogger(__name__)


class ErrorType:
    """Error type constants."""
    FORM_DEFINITION = "form_definition"
    STRUCTURE = "structure"
    DRAFT = "draft"
    WIDGET = "widget"
    SYSTEM = "system"


class ErrorHandler:
    """Error handling for the request form."""

    @staticmethod
    def handle_error(
        error: Exception,
        context: str,
        error_type: str = ErrorType.SYSTEM,
        user_message: Optional[str] = None,
        recovery_options: Optional[List[Dict[str, Any]]] = None,
        show_details: bool = False
    ) -> None:
        """
        Log an error and show it to the user with recovery options.

        Args:
            error: The exception that occurred
            context: Context where the error occurred
            error_type: Type of error (from ErrorType constants)
            user_message: Custom user-friendly message
            recovery_options: List of recovery actions
            show_details: Whether to show technical details
        """
        logger.error(f"Error in {context}: {str(error)}", exc_info=True)

        if not user_message:
            user_message = ErrorHandler.get_user_friendly_message(error, error_type)

        ErrorHandler._display_error(user_message, error, context, recovery_options, show_details)

    @staticmethod
    def get_user_friendly_message(error: Exception, error_type: str) -> str:
        """User-facing message for an error of the given type."""
        error_messages = {
            ErrorType.FORM_DEFINITION: {
                FormDefinitionError: "📋 The form definition is invalid. Please contact support.",
                FileNotFoundError: "📋 The form definition file could not be found.",
                "default": "📋 The form could not be loaded."
            },
            ErrorType.STRUCTURE: {
                StructuralOperationInvalid: "🗂️ That DVR or time frame cannot be changed.",
                "default": "🗂️ The form layout could not be updated. Please try again."
            },
            ErrorType.DRAFT: {
                DraftCorrupt: "💾 The saved draft was damaged and has been discarded.",
                PermissionError: "💾 The draft could not be saved. Please check folder permissions.",
                "default": "💾 Draft error occurred. Your current entries are unaffected."
            },
            ErrorType.WIDGET: {
                WidgetNotReady: "📅 The date picker is still loading. Please try again.",
                "default": "📅 The date picker could not be updated."
            },
            ErrorType.SYSTEM: {
                MemoryError: "💻 System is running low on memory. Please try again or contact support.",
                ImportError: "💻 Required system component is missing. Please contact support.",
                "default": "💻 System error occurred. Please try again or contact support."
            }
        }

        error_type_messages = error_messages.get(error_type, error_messages[ErrorType.SYSTEM])

        for exception_type, message in error_type_messages.items():
            if exception_type != "default" and isinstance(error, exception_type):
                return message

        return error_type_messages.get("default", "An unexpected error occurred.")

    @staticmethod
    def _display_error(
        user_message: str,
        error: Exception,
        context: str,
        recovery_options: Optional[List[Dict[str, Any]]] = None,
        show_details: bool = False
    ) -> None:
        st.error(user_message)

        if recovery_options:
            st.subheader("🔧 Suggested Actions:")

            for i, option in enumerate(recovery_options):
                col1, col2 = st.columns([3, 1])

                with col1:
                    st.write(f"**{option['title']}**")
                    st.write(option['description'])

                with col2:
                    if st.button(option['button_text'], key=f"recovery_{i}"):
                        if 'action' in option and callable(option['action']):
                            try:
                                option['action']()
                            except Exception as e:
                                logger.error(f"Recovery action failed: {e}", exc_info=True)
                                st.error(f"Recovery action failed: {str(e)}")

        if show_details:
            with st.expander("🔍 Technical Details"):
                st.write(f"**Error Type:** {type(error).__name__}")
                st.write(f"**Context:** {context}")
                st.write(f"**Error Message:** {str(error)}")
                if hasattr(error, 'get_full_details'):
                    st.json(error.get_full_details())
                st.code(traceback.format_exc())

    @staticmethod
    def with_error_handling(
        func: Callable,
        context: str,
        error_type: str = ErrorType.SYSTEM,
        user_message: Optional[str] = None,
        recovery_options: Optional[List[Dict[str, Any]]] = None,
        show_details: bool = False,
        default_return: Any = None
    ) -> Any:
        """
        Run an operation, reporting any exception through handle_error.

        Returns:
            Function result or default_return on error
        """
        try:
            return func()
        except Exception as e:
            ErrorHandler.handle_error(e, context, error_type, user_message, recovery_options, show_details)
            return default_return

    @staticmethod
    def create_recovery_options(context: str) -> List[Dict[str, Any]]:
        """Create context-specific recovery options."""
        recovery_options: List[Dict[str, Any]] = []

        if "draft" in context.lower():
            recovery_options.append({
                'title': 'Discard Draft',
                'description': 'Delete the stored draft and keep working on the current form',
                'button_text': '🗑️ Discard',
                'action': lambda: ErrorHandler._discard_draft()
            })

        if "validation" in context.lower() or "structure" in context.lower():
            recovery_options.append({
                'title': 'Reset Form',
                'description': 'Clear every field and start with one DVR',
                'button_text': '🔄 Reset Form',
                'action': lambda: ErrorHandler._reset_form()
            })

        recovery_options.append({
            'title': 'Restart Session',
            'description': 'Start a fresh form session',
            'button_text': '🔄 Restart',
            'action': lambda: ErrorHandler._restart_session()
        })

        return recovery_options

    @staticmethod
    def _discard_draft() -> None:
        session = SessionManager.get_form_session()
        if session is not None and session.clear_draft():
            st.success("🗑️ Draft discarded")

    @staticmethod
    def _reset_form() -> None:
        session = SessionManager.get_form_session()
        if session is None:
            st.warning("⚠️ No form to reset")
            return
        session.reset()
        SessionManager.clear_validation_errors()
        st.success("🔄 Form reset")
        st.rerun()

    @staticmethod
    def _restart_session() -> None:
        session = SessionManager.get_form_session()
        SessionManager.reset_form_session(session.config if session is not None else None)
        st.success("🔄 Session restarted successfully")
        st.rerun()


def handle_error(error: Exception, context: str, error_type: str = ErrorType.SYSTEM) -> None:
    """Convenience function for error handling."""
    ErrorHandler.handle_error(error, context, error_type)


def with_error_handling(func: Callable, context: str, **kwargs) -> Any:
    """Convenience function for wrapping operations with error handling."""
    return ErrorHandler.with_error_handling(func, context, **kwargs)
