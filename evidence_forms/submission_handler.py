"""
Submission handler for the request form.
Validates the whole form, builds the attachments and hands everything to
the external submission client.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Callable, List, NamedTuple, Optional

from .export import generate_json_document, json_document_bytes
from .session_manager import SessionManager
from .ui_feedback import Notify

logger = logging.getLogger(__name__)

SUBMISSION_SUCCESS_MESSAGE = "Request submitted successfully"
SUBMISSION_ERROR_MESSAGE = "Submission failed. Your draft has been saved."
NETWORK_ERROR_MESSAGE = "Network error. Your draft has been saved."
VALIDATION_BLOCKED_MESSAGE = "Please fix the highlighted fields before submitting"


class Attachment(NamedTuple):
    filename: str
    content: bytes
    mime_type: str


class SubmissionResult(NamedTuple):
    success: bool
    message: str
    errors: Dict[str, str] = {}
    first_invalid: Optional[str] = None
    ticket_id: Optional[str] = None
    draft_saved: bool = False


class SubmissionClient(ABC):
    """External collaborator that delivers a request to the ticketing system."""

    @abstractmethod
    def submit(self, form_data: Dict[str, Any], attachments: List[Attachment]) -> Dict[str, Any]:
        """
        Deliver the request.

        Returns:
            Response dictionary with at least 'success' and optionally
            'ticketId' and 'message'

        Raises:
            ConnectionError / TimeoutError: On network failure
        """


class OutboxSubmissionClient(SubmissionClient):
    """
    Writes each request into a local outbox folder for a separate
    delivery process to pick up.
    """

    def __init__(self, directory: str = "outbox"):
        self.directory = Path(directory)

    def submit(self, form_data: Dict[str, Any], attachments: List[Attachment]) -> Dict[str, Any]:
        ticket_id = f"REQ-{datetime.now().strftime('%Y%m%d%H%M%S%f')}"
        request_dir = self.directory / ticket_id
        try:
            request_dir.mkdir(parents=True, exist_ok=False)
            with open(request_dir / "request.json", 'w', encoding='utf-8') as f:
                json.dump(form_data, f, indent=2, ensure_ascii=False, default=str)
            for attachment in attachments:
                (request_dir / attachment.filename).write_bytes(attachment.content)
        except OSError as e:
            logger.error(f"Failed to write request {ticket_id} to outbox: {e}")
            return {'success': False, 'message': SUBMISSION_ERROR_MESSAGE}

        logger.info(f"Queued request {ticket_id} with {len(attachments)} attachment(s) in {request_dir}")
        return {'success': True, 'ticketId': ticket_id}


PdfRenderer = Callable[[Dict[str, Any], str], bytes]


class SubmissionHandler:
    """Handles the submission workflow for a FormSession."""

    @staticmethod
    def build_attachments(form_data: Dict[str, Any], session, render_pdf: Optional[PdfRenderer] = None,
                          now: Optional[datetime] = None) -> List[Attachment]:
        """
        Build the files sent with a request: the PDF (when a renderer is
        supplied) and the JSON document.
        """
        now = now or datetime.now()
        stamp = int(now.timestamp() * 1000)
        request_area = form_data.get('reqArea', session.form_type)
        attachments = []

        if render_pdf is not None:
            attachments.append(Attachment(
                f"{request_area}_{stamp}.pdf", render_pdf(form_data, session.form_type), 'application/pdf'))

        document = generate_json_document(form_data, session.form_type, session, now=now)
        attachments.append(Attachment(
            f"{request_area}_{stamp}.json", json_document_bytes(document), 'application/json'))
        return attachments

    @staticmethod
    def submit(session, client: SubmissionClient, render_pdf: Optional[PdfRenderer] = None) -> SubmissionResult:
        """
        Validate and submit the form.

        Any invalid field blocks the submission; all invalid fields are
        reported at once. On success the draft is cleared and the form reset;
        on failure the draft is saved so nothing is lost.

        Args:
            session: FormSession to submit
            client: External submission client
            render_pdf: Optional callable(form_data, form_type) -> PDF bytes

        Returns:
            SubmissionResult
        """
        validation = session.validate_all()
        if not validation.is_valid:
            errors = {address: issue.message for address, issue in validation.errors.items()}
            logger.info(f"Submission blocked - {len(errors)} invalid field(s), first {validation.first_invalid}")
            return SubmissionResult(False, VALIDATION_BLOCKED_MESSAGE, errors, validation.first_invalid)

        form_data = session.collect_data()

        try:
            attachments = SubmissionHandler.build_attachments(form_data, session, render_pdf)
            response = client.submit(form_data, attachments) or {}
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Network error submitting request: {e}", exc_info=True)
            return SubmissionResult(False, NETWORK_ERROR_MESSAGE, draft_saved=session.save_draft())
        except Exception as e:
            logger.error(f"Submission error: {e}", exc_info=True)
            return SubmissionResult(False, SUBMISSION_ERROR_MESSAGE, draft_saved=session.save_draft())

        if not response.get('success'):
            message = response.get('message') or SUBMISSION_ERROR_MESSAGE
            logger.warning(f"Submission rejected: {message}")
            return SubmissionResult(False, message, draft_saved=session.save_draft())

        ticket_id = response.get('ticketId')
        session.clear_draft()
        session.reset()
        logger.info(f"Request submitted successfully (ticket {ticket_id})")
        return SubmissionResult(True, SUBMISSION_SUCCESS_MESSAGE, ticket_id=ticket_id)

    @staticmethod
    def handle_streamlit_submission(client: SubmissionClient, render_pdf: Optional[PdfRenderer] = None) -> bool:
        """Handle the submit button from the Streamlit page."""
        session = SessionManager.get_form_session()
        if session is None:
            Notify.error("Form is not ready yet")
            return False

        result = SubmissionHandler.submit(session, client, render_pdf)
        SessionManager.set_submission_result(result)

        if result.errors:
            SessionManager.set_validation_errors(result.errors, result.first_invalid)
            Notify.error(f"{len(result.errors)} field(s) need attention")
            return False

        SessionManager.clear_validation_errors()
        if result.success:
            Notify.success(result.message)
            return True

        Notify.error(result.message)
        return False
