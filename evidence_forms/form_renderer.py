"""
Streamlit rendering of a FormSession.

Every widget is keyed by its field address. The FormSession is the source
of truth: widget session-state keys are overwritten from the session before
each widget is drawn, so renumbered DVRs and time frames always show the
values of the entities now living at those addresses.
"""

import streamlit as st
import streamlit.components.v1 as components
from datetime import datetime, time
from typing import Any, Optional
import logging

from .error_handler import ErrorHandler, ErrorType
from .export import export_time_frames_csv
from .field_addressing import FieldKey, encode_key
from .form_data_collector import summarize_time_frames
from .form_definition import FieldKind, FieldScope
from .form_model import FieldState
from .session_manager import SessionManager
from .submission_handler import PdfRenderer, SubmissionClient, SubmissionHandler
from .ui_feedback import Notify, UserFeedback
from .validators import parse_datetime
from .widget_adapter import PICKER_KEY_PREFIX, normalize_picker_value

logger = logging.getLogger(__name__)

WIDGET_KEY_PREFIX = "field_"
FOCUS_ANCHOR_PREFIX = "focus-"


def widget_key(address: str, part: str = "") -> str:
    return f"{WIDGET_KEY_PREFIX}{address}{'_' + part if part else ''}"


def _sync_widget_state(key: str, value: Any) -> None:
    """Push the session's value into a widget key before the widget is created."""
    if key not in st.session_state or st.session_state[key] != value:
        st.session_state[key] = value


def _focus_script(address: str) -> str:
    """Scroll the parent page to a field anchor and focus the first input after it."""
    return f"""
<script>
const doc = window.parent.document;
const anchor = doc.getElementById("{FOCUS_ANCHOR_PREFIX}{address}");
if (anchor) {{
  anchor.scrollIntoView({{behavior: "smooth", block: "center"}});
  const field = Array.from(doc.querySelectorAll("input, textarea"))
    .find(el => anchor.compareDocumentPosition(el) & Node.DOCUMENT_POSITION_FOLLOWING);
  if (field) {{
    field.focus({{preventScroll: true}});
  }}
}}
</script>
"""


class FormRenderer:
    """Renders the request form and routes widget callbacks into the FormSession."""

    # Callbacks

    @staticmethod
    def _on_text_change(address: str) -> None:
        session = SessionManager.get_form_session()
        value = st.session_state.get(widget_key(address), '')
        # Streamlit reports text changes on enter or focus loss
        session.input_text(address, value)
        session.blur(address)
        SessionManager.update_activity()

    @staticmethod
    def _on_choice_change(address: str) -> None:
        session = SessionManager.get_form_session()
        value = st.session_state.get(widget_key(address))
        session.set_value(address, value or '')
        SessionManager.update_activity()

    @staticmethod
    def _on_picker_change(address: str, kind: str) -> None:
        """Flush the date/time inputs into the picker's own storage, then report the change."""
        session = SessionManager.get_form_session()
        date_part = st.session_state.get(widget_key(address, 'date'))
        if date_part is None:
            value = ''
        elif kind == FieldKind.DATE.value:
            value = normalize_picker_value(date_part, kind)
        else:
            time_part = st.session_state.get(widget_key(address, 'time')) or time(0, 0)
            value = normalize_picker_value(datetime.combine(date_part, time_part), kind)

        st.session_state[f"{PICKER_KEY_PREFIX}{address}"] = value
        ErrorHandler.with_error_handling(
            lambda: session.picker_changed(address),
            context=f"date picker ({address})",
            error_type=ErrorType.WIDGET
        )
        SessionManager.update_activity()

    @staticmethod
    def _structure_action(action: str, *args: int) -> None:
        session = SessionManager.get_form_session()
        operation = getattr(session, action)
        ErrorHandler.with_error_handling(
            lambda: operation(*args),
            context=f"structure change ({action})",
            error_type=ErrorType.STRUCTURE
        )

    @staticmethod
    def _load_draft() -> None:
        session = SessionManager.get_form_session()
        restored = ErrorHandler.with_error_handling(
            session.load_draft,
            context="draft restore",
            error_type=ErrorType.DRAFT,
            recovery_options=ErrorHandler.create_recovery_options("draft"),
            default_return=False
        )
        if restored:
            Notify.success("Draft restored")
        else:
            Notify.warn("No draft could be restored")

    @staticmethod
    def _save_draft() -> None:
        session = SessionManager.get_form_session()
        if session.save_draft():
            Notify.success("Draft saved")
        else:
            Notify.error("Draft could not be saved")

    @staticmethod
    def _clear_form() -> None:
        session = SessionManager.get_form_session()
        session.clear_draft()
        session.reset()
        SessionManager.clear_validation_errors()
        Notify.info("Form cleared")

    @staticmethod
    def _submit(client: SubmissionClient, render_pdf: Optional[PdfRenderer] = None) -> None:
        # Runs before the page is drawn, so a blocked submit shows every error on this run
        SubmissionHandler.handle_streamlit_submission(client, render_pdf)
        SessionManager.update_activity()

    @staticmethod
    def _background_tick() -> None:
        """Fire timers that fell due while the page sat idle; redraw if one changed the form."""
        session = SessionManager.get_form_session()
        if session is None:
            return
        if session.background_tick():
            st.rerun()

    # Fields

    @staticmethod
    def _label(session, key: FieldKey, state: FieldState) -> str:
        label = state.definition.label
        return f"{label} *" if session.engine.required_now(key) else label

    @staticmethod
    def render_field(session, key: FieldKey, state: FieldState) -> None:
        """Render one field with its inline error and note, or nothing when it is hidden."""
        if not session.engine.is_visible(key):
            return

        definition = state.definition
        address = encode_key(key)
        label = FormRenderer._label(session, key, state)
        kind = definition.kind
        is_focus = state.issue is not None and address == SessionManager.get_focus_field()

        if is_focus:
            st.markdown(f"<div id='{FOCUS_ANCHOR_PREFIX}{address}'></div>", unsafe_allow_html=True)

        if definition.widget_backed:
            FormRenderer._render_picker(session, address, label, definition.kind.value, definition.help)
        elif kind == FieldKind.SELECT:
            _sync_widget_state(widget_key(address), state.value or None)
            st.selectbox(label, definition.options, key=widget_key(address), help=definition.help,
                         placeholder="Select...", on_change=FormRenderer._on_choice_change, args=(address,))
        elif kind == FieldKind.RADIO:
            _sync_widget_state(widget_key(address), state.value or None)
            st.radio(label, definition.options, key=widget_key(address), help=definition.help,
                     horizontal=True, on_change=FormRenderer._on_choice_change, args=(address,))
        elif kind == FieldKind.TEXTAREA:
            _sync_widget_state(widget_key(address), state.value)
            st.text_area(label, key=widget_key(address), help=definition.help,
                         placeholder=definition.placeholder,
                         on_change=FormRenderer._on_text_change, args=(address,))
        else:
            _sync_widget_state(widget_key(address), state.value)
            st.text_input(label, key=widget_key(address), help=definition.help,
                          placeholder=definition.placeholder,
                          on_change=FormRenderer._on_text_change, args=(address,))

        if is_focus:
            UserFeedback.first_field_error(state.issue.message)
            if SessionManager.consume_focus_request():
                components.html(_focus_script(address), height=0)
        elif state.issue is not None:
            UserFeedback.field_error(state.issue.message)
        if state.annotation:
            UserFeedback.field_note(state.annotation, urgent='URGENT' in state.annotation or 'CRITICAL' in state.annotation)

    @staticmethod
    def _render_picker(session, address: str, label: str, kind: str, help_text: Optional[str]) -> None:
        try:
            current = parse_datetime(session.value(address))
        except ValueError:
            logger.warning(f"Picker at {address} holds an unparseable value")
            current = None

        if kind == FieldKind.DATE.value:
            _sync_widget_state(widget_key(address, 'date'), current.date() if current else None)
            st.date_input(label, key=widget_key(address, 'date'), help=help_text, format="YYYY-MM-DD",
                          on_change=FormRenderer._on_picker_change, args=(address, kind))
            return

        col1, col2 = st.columns(2)
        _sync_widget_state(widget_key(address, 'date'), current.date() if current else None)
        _sync_widget_state(widget_key(address, 'time'), current.time() if current else None)
        with col1:
            st.date_input(f"{label} (Date)", key=widget_key(address, 'date'), help=help_text,
                          format="YYYY-MM-DD", on_change=FormRenderer._on_picker_change, args=(address, kind))
        with col2:
            st.time_input(f"{label} (Time)", key=widget_key(address, 'time'), step=60,
                          on_change=FormRenderer._on_picker_change, args=(address, kind))

    # Structure

    @staticmethod
    def render_groups(session) -> None:
        """One expander per DVR, each holding its time frames."""
        definition = session.definition
        groups = session.form.groups

        for g, group in enumerate(groups):
            with st.expander(f"{definition.group_label} {g + 1}", expanded=True):
                for name, state in group.fields.items():
                    FormRenderer.render_field(session, FieldKey(name, g), state)

                for i, item in enumerate(group.items):
                    st.markdown(f"**{definition.item_label} {i + 1}**")
                    for name, state in item.fields.items():
                        FormRenderer.render_field(session, FieldKey(name, g, i), state)
                    if i > 0:
                        st.button(f"Remove {definition.item_label} {i + 1}", key=f"remove_item_g{g}_{i}",
                                  on_click=FormRenderer._structure_action, args=('remove_item', g, i))

                st.button(f"➕ Add {definition.item_label}", key=f"add_item_g{g}",
                          on_click=FormRenderer._structure_action, args=('add_item', g))
                if g > 0:
                    st.button(f"🗑️ Remove {definition.group_label} {g + 1}", key=f"remove_group_g{g}",
                              on_click=FormRenderer._structure_action, args=('remove_group', g))

        st.button(f"➕ Add {definition.group_label}", key="add_group",
                  on_click=FormRenderer._structure_action, args=('add_group',))

    @staticmethod
    def render_sections(session) -> None:
        """Form-level fields by section; the section holding DVR fields also holds the DVR list."""
        definition = session.definition
        group_sections = {f.section for f in definition.fields if f.scope != FieldScope.FORM}
        form_keys = [(FieldKey(name), state) for name, state in session.form.fields.items()]

        for section in definition.sections:
            st.subheader(section)
            for key, state in form_keys:
                if state.definition.section == section:
                    FormRenderer.render_field(session, key, state)
            if section in group_sections:
                FormRenderer.render_groups(session)

    # Page furniture

    @staticmethod
    def render_draft_controls(session) -> None:
        col1, col2 = st.columns([3, 1])
        with col1:
            if session.has_draft() and not session.has_started_working:
                st.button(f"📂 Load Draft ({session.draft_age()})", key="load_draft",
                          on_click=FormRenderer._load_draft)
            elif session.autosave.enabled:
                st.caption("💾 Auto-save active")
        with col2:
            st.button("Save Draft", key="save_draft", on_click=FormRenderer._save_draft)

    @staticmethod
    def render_review(session) -> None:
        """Time-frame table plus a CSV download."""
        df = summarize_time_frames(session)
        if df.empty:
            return
        with st.expander("📋 Review Time Frames"):
            st.dataframe(df, width="stretch", hide_index=True)
            csv_data = export_time_frames_csv(session)
            if csv_data:
                st.download_button("Download CSV", data=csv_data, file_name=f"{session.form_type}_time_frames.csv",
                                   mime="text/csv", key="download_time_frames")

    @staticmethod
    def render_submission_result(session) -> None:
        """Confirmation for the last successful submission, until the next form is started."""
        result = SessionManager.get_submission_result()
        if result is None or not result.success or session.has_started_working:
            return
        ticket = f" (ticket {result.ticket_id})" if result.ticket_id else ""
        st.success(f"✅ {result.message}{ticket}")

    @staticmethod
    def render_timers(session) -> None:
        """Re-run the timer queue every tick interval so idle autosave and deferred checks still fire."""
        interval = float(session.config.get('ui', {}).get('tick_interval_seconds', 1.0))
        st.fragment(FormRenderer._background_tick, run_every=interval)()

    @staticmethod
    def render(session, client: SubmissionClient, render_pdf: Optional[PdfRenderer] = None) -> None:
        """
        Render the whole page.

        Args:
            session: The live FormSession
            client: Submission client the submit button hands the request to
            render_pdf: Optional PDF renderer for the submission attachments
        """
        st.title(session.definition.title)
        FormRenderer.render_submission_result(session)
        FormRenderer.render_draft_controls(session)
        UserFeedback.show_progress(session.progress_percentage, session.progress_band)

        FormRenderer.render_sections(session)
        FormRenderer.render_review(session)

        errors = SessionManager.get_validation_errors()
        if errors:
            UserFeedback.show_validation_results(errors)

        col1, col2 = st.columns([1, 1])
        with col1:
            st.button("📤 Submit Request", type="primary", key="submit_request",
                      on_click=FormRenderer._submit, args=(client, render_pdf))
        with col2:
            st.button("🗑️ Clear Form", key="clear_form", on_click=FormRenderer._clear_form)

        FormRenderer.render_timers(session)
