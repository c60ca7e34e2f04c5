"""
UI feedback utilities for the request form.
Toast notifications, spinners, the progress bar and validation summaries.
"""

import streamlit as st
from typing import List, Optional
from contextlib import contextmanager
import logging

logger = logging.getLogger(__name__)

# Progress band -> bar colour
BAND_COLORS = {
    'low': '#dc3545',
    'medium': '#ffc107',
    'high': '#28a745'
}


class LoadingIndicator:
    """Loading indicator utilities."""

    @staticmethod
    @contextmanager
    def spinner(message: str = "Loading..."):
        """Context manager for spinner loading indicator."""
        with st.spinner(message):
            yield


class Notify:
    """
    Toast-first notification helper.

    The API includes: success, info, warn, error.

    Usage:
    Notify.success("Draft saved")
    """

    ICONS = {
        'success': '✅',
        'info': 'ℹ️',
        'warning': '⚠️',
        'error': '❌'
    }

    @staticmethod
    def _display_notification(message: str, notification_type: str = 'info') -> None:
        icon = Notify.ICONS.get(notification_type, 'ℹ️')
        try:
            st.toast(message, icon=icon)
        except Exception as e:
            logger.error(f"Error using st.toast: {e}", exc_info=True)
            full_message = f"{icon} {message}"
            if notification_type == 'success':
                st.success(full_message)
            elif notification_type == 'warning':
                st.warning(full_message)
            elif notification_type == 'error':
                st.error(full_message)
            else:
                st.info(full_message)

    @staticmethod
    def success(message: str) -> None:
        Notify._display_notification(message, 'success')

    @staticmethod
    def info(message: str) -> None:
        Notify._display_notification(message, 'info')

    @staticmethod
    def warn(message: str) -> None:
        Notify._display_notification(message, 'warning')

    @staticmethod
    def error(message: str) -> None:
        Notify._display_notification(message, 'error')


class UserFeedback:
    """Inline feedback blocks."""

    @staticmethod
    def show_progress(percentage: int, band: str) -> None:
        """Completion bar coloured by band."""
        color = BAND_COLORS.get(band, BAND_COLORS['low'])
        st.progress(min(max(percentage, 0), 100) / 100, text=f"Form completion: {percentage}%")
        st.markdown(
            f"<div style='height:4px;width:{percentage}%;background:{color};border-radius:2px'></div>",
            unsafe_allow_html=True
        )

    @staticmethod
    def show_validation_results(errors: List[str], warnings: Optional[List[str]] = None):
        """Summary of every invalid field at once."""
        if errors:
            st.error(f"❌ **{len(errors)} field(s) need attention:**")
            for error in errors:
                st.error(f"• {error}")
        if warnings:
            st.warning(f"⚠️ **{len(warnings)} warning(s):**")
            for warning in warnings:
                st.warning(f"• {warning}")
        if not errors and not warnings:
            st.success("✅ All fields are valid")

    @staticmethod
    def field_error(message: str) -> None:
        st.markdown(f"<span style='color:#dc3545;font-size:0.85em'>{message}</span>", unsafe_allow_html=True)

    @staticmethod
    def first_field_error(message: str) -> None:
        """Error for the field a blocked submit jumps to."""
        st.error(f"⬆️ {message}")

    @staticmethod
    def field_note(message: str, urgent: bool = False) -> None:
        if urgent:
            st.warning(message)
        else:
            st.caption(message)


def show_loading(message: str = "Loading..."):
    """Convenience function for loading spinner."""
    return LoadingIndicator.spinner(message)
