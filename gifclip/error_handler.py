"""
Error Handling Module
Provides the conversion error taxonomy, structured error records and
categorization of unexpected failures for response mapping and reporting.
"""

import logging
import threading
from collections import deque
from typing import Deque, Dict, Any, List, Optional
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

RECENT_ERROR_LIMIT = 100

UPLOAD_SUGGESTION = (
    "The video site refused the download. Download the video yourself and "
    "use the file upload option instead."
)


class ErrorCategory(Enum):
    """Machine-checkable failure categories exposed to callers"""
    INVALID_REQUEST = "InvalidRequest"
    SOURCE_BLOCKED = "SourceBlocked"
    SOURCE_INVALID = "SourceInvalid"
    CONVERSION_FAILED = "ConversionFailed"
    INTERNAL_IO = "InternalIO"


class ConversionError(Exception):
    """Expected pipeline failure carrying its category and user-facing detail"""

    def __init__(self, category: ErrorCategory, message: str,
                 suggestion: Optional[str] = None,
                 details: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.category = category
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    @classmethod
    def blocked(cls, message: str) -> 'ConversionError':
        return cls(ErrorCategory.SOURCE_BLOCKED, message, suggestion=UPLOAD_SUGGESTION)


@dataclass
class ProcessingError:
    """Structured representation of a failed conversion"""
    category: ErrorCategory
    message: str
    exception_type: str
    suggestions: List[str] = field(default_factory=list)
    details: Dict[str, str] = field(default_factory=dict)
    context: Optional[str] = None

    def get_short_description(self) -> str:
        """Get concise error description for logging"""
        return f"{self.category.value}: {self.message}"

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            'error': self.category.value,
            'message': self.message,
        }
        if self.details:
            response['details'] = dict(self.details)
        if self.suggestions:
            response['suggestion'] = self.suggestions[0]
        return response


class ErrorHandler:
    """Centralized error categorization and accounting for conversion requests"""

    def __init__(self, history_size: int = RECENT_ERROR_LIMIT):
        self.error_counts = {category: 0 for category in ErrorCategory}
        self.recent_errors: Deque[ProcessingError] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def categorize_error(self, exception: Exception, context: str = None) -> ProcessingError:
        """Categorize an exception into a structured ProcessingError"""
        exception_type = type(exception).__name__

        if isinstance(exception, ConversionError):
            return ProcessingError(
                category=exception.category,
                message=exception.message,
                exception_type=exception_type,
                suggestions=[exception.suggestion] if exception.suggestion else [],
                details=exception.details,
                context=context
            )

        if isinstance(exception, OSError):
            return ProcessingError(
                category=ErrorCategory.INTERNAL_IO,
                message=f"Storage error: {exception}",
                exception_type=exception_type,
                suggestions=["Check that the storage directories exist and are writable"],
                context=context
            )

        return ProcessingError(
            category=ErrorCategory.CONVERSION_FAILED,
            message=f"Unexpected error: {exception}",
            exception_type=exception_type,
            context=context
        )

    def handle_error(self, exception: Exception, context: str = None) -> ProcessingError:
        """Categorize an error, record it and log at a level matching its category"""
        error = self.categorize_error(exception, context)
        with self._lock:
            self.recent_errors.append(error)
            self.error_counts[error.category] += 1

        if error.category in (ErrorCategory.INVALID_REQUEST, ErrorCategory.SOURCE_INVALID):
            logger.info(f"Rejected request: {error.get_short_description()}")
        elif error.category == ErrorCategory.SOURCE_BLOCKED:
            logger.warning(f"Upstream refused fetch: {error.get_short_description()}")
        elif error.exception_type == 'ConversionError':
            logger.error(f"ERROR: {error.get_short_description()}")
        else:
            logger.error(f"ERROR: {error.get_short_description()}", exc_info=exception)

        return error

    def get_error_summary(self) -> Dict[str, Any]:
        """Get per-category error counts"""
        total_errors = sum(self.error_counts.values())
        if total_errors == 0:
            return {'total_errors': 0, 'categories': {}}

        category_counts = {cat.value: count for cat, count in self.error_counts.items() if count > 0}
        return {
            'total_errors': total_errors,
            'categories': category_counts,
            'most_common_category': max(category_counts.items(), key=lambda x: x[1])[0],
            'recent': [error.get_short_description() for error in self.recent_errors],
        }

    def reset(self):
        """Reset error tracking"""
        with self._lock:
            self.error_counts = {category: 0 for category in ErrorCategory}
            self.recent_errors.clear()
