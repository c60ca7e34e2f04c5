"""
Custom exception classes for the form engine.

Field-level validation problems are never raised; they are reported as
ValidationIssue values. The exceptions below cover contract violations,
corrupt drafts and widget timing problems.
"""

import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class FormEngineError(Exception):
    """
    Base exception for form engine errors.
    
    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """
    
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)
    
    def __str__(self) -> str:
        return self.message
    
    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class StructuralOperationInvalid(FormEngineError):
    """
    Raised when a structural operation targets the non-removable first
    DVR / time-frame or an index that does not exist.
    """
    
    def __init__(self, operation: str, group_index: Optional[int] = None,
                 item_index: Optional[int] = None, message: Optional[str] = None):
        self.operation = operation
        self.group_index = group_index
        self.item_index = item_index
        
        if message is None:
            message = f"Invalid structural operation '{operation}' (group={group_index}, item={item_index})"
        
        context = {
            'operation': operation,
            'group_index': group_index,
            'item_index': item_index
        }
        
        recovery_suggestions = [
            "The first DVR system and the first time frame cannot be removed",
            "Refresh the page if the remove button was shown for them"
        ]
        
        super().__init__(message, context, recovery_suggestions)


class DraftCorrupt(FormEngineError):
    """
    Raised when a stored draft cannot be parsed or describes a structure
    that does not hold its own values.
    """
    
    def __init__(self, reason: str, original_error: Optional[Exception] = None,
                 message: Optional[str] = None):
        self.reason = reason
        self.original_error = original_error
        
        if message is None:
            message = f"Draft is corrupt: {reason}"
        
        context = {'reason': reason}
        if original_error is not None:
            context['original_error_type'] = type(original_error).__name__
            context['original_error_message'] = str(original_error)
        
        recovery_suggestions = [
            "The draft will be discarded and the form starts empty",
            "Re-enter the request details; auto-save will create a new draft"
        ]
        
        super().__init__(message, context, recovery_suggestions)


class WidgetNotReady(FormEngineError):
    """Raised inside the widget adapter when a picker is used before it mounted."""
    
    def __init__(self, address: str, operation: str):
        self.address = address
        self.operation = operation
        super().__init__(
            f"Date picker for '{address}' is not ready for {operation}",
            context={'address': address, 'operation': operation}
        )


class FormDefinitionError(FormEngineError):
    """Raised when the YAML form definition cannot be loaded or is inconsistent."""
    
    def __init__(self, source: str, issue: str):
        self.source = source
        self.issue = issue
        super().__init__(
            f"Invalid form definition {source}: {issue}",
            context={'source': source, 'issue': issue},
            recovery_suggestions=[
                "Check the YAML syntax of the form definition",
                "Field names must be unique and contain only letters and digits",
                "Conditional fields must reference an existing field"
            ]
        )


class AddressError(ValueError):
    """Raised when a field address cannot be encoded or decoded."""


def log_error_with_context(error: FormEngineError, operation: str) -> None:
    """
    Log error with full context information.
    
    Args:
        error: FormEngineError instance
        operation: Description of the operation that failed
    """
    logger.error(f"Form engine error during {operation}")
    logger.error(f"Error type: {type(error).__name__}")
    logger.error(f"Error message: {error.message}")
    
    if error.context:
        logger.error("Error context:")
        for key, value in error.context.items():
            logger.error(f"  {key}: {value}")
    
    if error.recovery_suggestions:
        logger.info("Recovery suggestions:")
        for i, suggestion in enumerate(error.recovery_suggestions, 1):
            logger.info(f"  {i}. {suggestion}")
