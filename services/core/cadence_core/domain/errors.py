"""Domain error taxonomy.

Every error carries a ``user_message`` suitable for showing next to a retry
button, and a ``retryable`` flag. Families:

- InputError: the caller sent something unusable; no network call was made.
- UpstreamError: the identity provider, exchange proxy or completion service
  failed; carries the upstream status and body when there was one.
- ContractError: the completion service answered, but not in the expected
  JSON shape. Kept apart from UpstreamError so callers can decide whether
  re-sending the same prompt is worthwhile.
"""

from typing import Any, Optional


class CadenceError(Exception):
    """Base class for all domain errors."""

    code = "cadence_error"
    user_message = "Something went wrong. Please try again."
    retryable = False

    def __init__(self, message: Optional[str] = None, user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.user_message,
            "retryable": self.retryable,
        }


# =============================================================================
# INPUT ERRORS
# =============================================================================


class InputError(CadenceError):
    code = "input_error"


class MissingCode(InputError):
    code = "missing_code"
    user_message = "The sign-in response did not include an authorization code. Please sign in again."


class InvalidState(InputError):
    code = "invalid_state"
    user_message = "This sign-in attempt expired or could not be verified. Please sign in again."


class AuthorizationDenied(InputError):
    code = "authorization_denied"
    user_message = "Access to your X account was not granted."


class NotAuthenticated(InputError):
    code = "not_authenticated"
    user_message = "Please sign in with X first."


# =============================================================================
# UPSTREAM ERRORS
# =============================================================================


class UpstreamError(CadenceError):
    """A remote service failed.

    Attributes:
        status: Upstream HTTP status, if a response was received.
        body: Upstream response body (truncated by callers where large).
    """

    code = "upstream_error"
    user_message = "A remote service is unavailable right now. Please try again."
    retryable = True

    def __init__(
        self,
        message: Optional[str] = None,
        status: Optional[int] = None,
        body: Any = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message)
        self.status = status
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.status is not None:
            data["upstream_status"] = self.status
        return data


class TokenExchangeFailed(UpstreamError):
    code = "token_exchange_failed"
    user_message = "We could not finish signing you in with X. Please try again."

    def __init__(self, details: Any = None, status: Optional[int] = None):
        super().__init__(f"Token exchange failed: {details}", status=status, body=details)
        self.details = details


class TokenRefreshFailed(UpstreamError):
    code = "token_refresh_failed"
    user_message = "Your X session has expired. Please sign in again."

    def __init__(self, details: Any = None, status: Optional[int] = None):
        super().__init__(f"Token refresh failed: {details}", status=status, body=details)
        self.details = details


class UpstreamTimeout(UpstreamError):
    code = "upstream_timeout"
    user_message = "A remote service took too long to respond. Please try again."


# =============================================================================
# CONTRACT ERRORS
# =============================================================================


class ContractError(CadenceError):
    """Model output did not satisfy the expected JSON contract."""

    code = "contract_error"
    retryable = True

    def __init__(self, message: Optional[str] = None, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response


class NoCompletion(ContractError):
    code = "no_completion"
    user_message = "The AI service returned an empty answer. Please try again."


class MalformedPersonaJSON(ContractError):
    code = "malformed_persona"
    user_message = "We could not read the persona analysis. Please try again."


class MalformedQueryList(ContractError):
    code = "malformed_query_list"
    user_message = "We could not generate search queries from your persona. Please try again."


class MalformedReplyJSON(ContractError):
    code = "malformed_reply"
    user_message = "We could not draft a reply for this post."


# =============================================================================
# SUGGESTION LIFECYCLE
# =============================================================================


class SuggestionNotFound(CadenceError):
    code = "suggestion_not_found"
    user_message = "That suggestion no longer exists."


class InvalidStatusTransition(CadenceError):
    code = "invalid_status_transition"
    user_message = "This suggestion has already been handled."

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move suggestion from {current!r} to {requested!r}")
        self.current = current
        self.requested = requested


__all__ = [
    "AuthorizationDenied",
    "CadenceError",
    "ContractError",
    "InputError",
    "InvalidState",
    "InvalidStatusTransition",
    "MalformedPersonaJSON",
    "MalformedQueryList",
    "MalformedReplyJSON",
    "MissingCode",
    "NoCompletion",
    "NotAuthenticated",
    "SuggestionNotFound",
    "TokenExchangeFailed",
    "TokenRefreshFailed",
    "UpstreamError",
    "UpstreamTimeout",
]
