"""Maps arbitrary failures onto a fixed set of user-facing error categories."""

from enum import Enum


class ErrorCategory(str, Enum):
    KEY_INVALID = "key-invalid"
    RATE_LIMITED = "rate-limited"
    QUOTA_EXCEEDED = "quota-exceeded"
    NETWORK_ERROR = "network-error"
    SERVICE_UNAVAILABLE = "service-unavailable"
    CONTENT_BLOCKED = "content-blocked"
    NOT_CONFIGURED = "not-configured"
    UNKNOWN = "unknown"


# Checked top to bottom; the first match wins.
KEYWORD_RULES = [
    (ErrorCategory.KEY_INVALID, (
        "api key", "unauthorized", "401", "403", "authentication", "permission denied",
    )),
    (ErrorCategory.RATE_LIMITED, (
        "rate limit", "429", "too many requests", "request rate",
    )),
    (ErrorCategory.QUOTA_EXCEEDED, (
        "quota", "billing", "payment", "resource exhausted",
    )),
    (ErrorCategory.NETWORK_ERROR, (
        "network", "fetch", "connection", "timeout", "econnrefused", "enotfound",
    )),
    (ErrorCategory.SERVICE_UNAVAILABLE, (
        "503", "service unavailable", "temporarily unavailable", "maintenance",
    )),
    (ErrorCategory.CONTENT_BLOCKED, (
        "blocked", "safety", "content policy", "not allowed",
    )),
]

USER_MESSAGES = {
    ErrorCategory.KEY_INVALID: (
        "API key is invalid or has been revoked. Please check your GEMINI_API_KEY "
        "in the .env file and ensure it's correct."
    ),
    ErrorCategory.RATE_LIMITED: (
        "Rate limit exceeded. Please wait a few moments and try again. "
        "Too many requests were made in a short time."
    ),
    ErrorCategory.QUOTA_EXCEEDED: (
        "API quota has been exceeded. Your API key has reached its usage limit. "
        "Please check your billing and quota limits, or wait until the quota resets."
    ),
    ErrorCategory.NETWORK_ERROR: (
        "Network error. Please check your internet connection and try again. "
        "If the problem persists, the API service may be temporarily unavailable."
    ),
    ErrorCategory.SERVICE_UNAVAILABLE: (
        "Service is temporarily unavailable. The API service is down or under "
        "maintenance. Please try again later."
    ),
    ErrorCategory.CONTENT_BLOCKED: (
        "Request blocked. The content violates the API's safety policies. "
        "Please try rephrasing your request."
    ),
    ErrorCategory.NOT_CONFIGURED: (
        "Gemini API key not configured. Please set the GEMINI_API_KEY "
        "environment variable and restart the app."
    ),
    ErrorCategory.UNKNOWN: (
        "An unexpected error occurred: {raw_message}. "
        "Please try again or contact support if the issue persists."
    ),
}


class ClassifiedError(Exception):
    """A failure normalized to one category plus a message fit to show the user."""

    def __init__(self, category, raw_message, user_message):
        self.category = ErrorCategory(category)
        self.raw_message = raw_message
        self.user_message = user_message
        super().__init__(raw_message)

    @classmethod
    def of(cls, category, raw_message, user_message=None):
        category = ErrorCategory(category)
        if user_message is None:
            user_message = USER_MESSAGES[category].format(raw_message=raw_message)
        return cls(category, raw_message, user_message)

    def to_dict(self):
        return {
            "category": self.category.value,
            "raw_message": self.raw_message,
            "user_message": self.user_message,
        }

    def __repr__(self):
        return f"ClassifiedError({self.category.value!r}, {self.raw_message!r})"


def _raw_message(error):
    try:
        message = str(error)
    except Exception:
        return f"<unprintable {type(error).__name__}>"
    if isinstance(error, BaseException) and not message:
        return type(error).__name__
    return message


def _is_classified(error):
    try:
        return hasattr(error, "category") and hasattr(error, "user_message")
    except Exception:
        return False


def classify(error):
    """Classify any raised or returned value.

    Values that already carry ``category`` and ``user_message`` are returned
    unchanged, so classifying twice is a no-op. Everything else is matched
    on its lower-cased message against ``KEYWORD_RULES`` in order.
    """
    if _is_classified(error):
        return error

    raw_message = _raw_message(error)
    lowered = raw_message.lower()
    for category, keywords in KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return ClassifiedError.of(category, raw_message)
    return ClassifiedError.of(ErrorCategory.UNKNOWN, raw_message)


def user_message_for(error):
    return classify(error).user_message


def is_category(error, category):
    return classify(error).category == ErrorCategory(category)
