from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

class AppError(Exception):
    def __init__(self, message: str, status_code: int = 500, user_message: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.user_message = user_message or "An error occurred. Please try again later."
        super().__init__(self.message)

class InvalidInputError(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400, user_message=message)

class ConnectionFailure(AppError):
    """The request never produced a response (DNS, refused, reset, client timeout)."""

    def __init__(self, message: str):
        super().__init__(
            message,
            status_code=503,
            user_message="Connection issue. Please check your network and try again."
        )

class SynthesisHTTPError(AppError):
    """Non-2xx response from the synthesis endpoint."""

    def __init__(self, status: int, body: Optional[Dict[str, Any]] = None):
        self.status = status
        self.body = body or {}
        detail = self.body.get('error') or f"HTTP {status}"
        super().__init__(f"Synthesis request failed: {detail}", status_code=status)

    @property
    def upgrade_required(self) -> bool:
        return bool(self.body.get('upgrade_required'))

class UpgradeRequiredError(AppError):
    def __init__(
        self,
        message: str,
        current_tier: str,
        status_code: int = 403,
        usage: Optional[int] = None,
        limit: Optional[int] = None
    ):
        self.current_tier = current_tier
        self.usage = usage
        self.limit = limit
        super().__init__(message, status_code=status_code, user_message=message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'error': self.message,
            'upgrade_required': True,
            'current_tier': self.current_tier
        }
        if self.usage is not None:
            payload['usage'] = self.usage
        if self.limit is not None:
            payload['limit'] = self.limit
        return payload

class StreamIncompleteError(AppError):
    def __init__(self, message: str = "No complete response received"):
        super().__init__(
            message,
            status_code=502,
            user_message="The analysis didn't finish. Please try again."
        )

class SynthesisAppError(AppError):
    """Application-level `error` event delivered inside the stream."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class ProviderError(AppError):
    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider} error: {message}", status_code=502)

class ErrorHandler:
    CATEGORY_MESSAGES = {
        'network': "Connection issue. Please check your network and try again.",
        'rate_limit': "We're a little busy right now. Please wait a moment and try again.",
        'server': "Our analysis service is having trouble. Please try again shortly.",
        'auth': "Please sign in again to continue.",
        'upgrade_required': "You've reached the limit for your plan. Upgrade to keep going.",
        'incomplete': "The analysis didn't finish. Please try again.",
        'client': "Something about that request didn't work. Please check your input.",
        'application': "We couldn't analyze that thought. Please try again.",
        'unknown': "An unexpected error occurred. Please try again.",
    }

    @staticmethod
    def categorize(error: Exception) -> str:
        if isinstance(error, UpgradeRequiredError):
            return 'upgrade_required'
        if isinstance(error, ConnectionFailure):
            return 'network'
        if isinstance(error, StreamIncompleteError):
            return 'incomplete'
        if isinstance(error, SynthesisAppError):
            return 'application'
        if isinstance(error, SynthesisHTTPError):
            if error.upgrade_required:
                return 'upgrade_required'
            if error.status in (401, 403):
                return 'auth'
            if error.status == 429:
                return 'rate_limit'
            if error.status == 408 or error.status >= 500:
                return 'server'
            return 'client'
        if isinstance(error, InvalidInputError):
            return 'client'
        return 'unknown'

    @classmethod
    def user_message(cls, error: Exception) -> str:
        category = cls.categorize(error)
        if category == 'upgrade_required':
            if isinstance(error, UpgradeRequiredError):
                return error.user_message
            if isinstance(error, SynthesisHTTPError) and error.body.get('error'):
                return str(error.body['error'])
        if isinstance(error, InvalidInputError):
            return error.user_message
        return cls.CATEGORY_MESSAGES[category]

    @staticmethod
    def handle_synthesis_error(error: Exception) -> str:
        logger.error(f"Synthesis error: {str(error)}", exc_info=error)
        return ErrorHandler.user_message(error)

    @staticmethod
    def handle_transcription_error(error: Exception) -> str:
        logger.error(f"Transcription error: {str(error)}")
        return "Sorry, I couldn't transcribe your audio. Please try recording it again."

    @staticmethod
    def handle_storage_error(error: Exception) -> str:
        logger.error(f"Storage error: {str(error)}")
        return "There was an issue saving your thought. Please try again."

    @staticmethod
    def handle_billing_error(error: Exception) -> str:
        logger.error(f"Billing error: {str(error)}")
        return "We couldn't open the billing page. Please try again later."
