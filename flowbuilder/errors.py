"""Exception hierarchy and external-boundary error payloads.

Three classes of failure:
  structural defects    — FlowStructureError (flow.py): producer bugs, raised.
  validation errors     — ValidationError records (schema.py): returned as data.
  boundary failures     — FlowApiError / GeneratorError (here): a non-2xx save
                          or generator response. A save failure may carry a
                          server validation payload; ``validation_errors``
                          extracts it so it can be merged with local errors
                          via validator.merge_errors().

This module performs no I/O. Callers that own the HTTP exchange construct the
errors from status code + body via ``from_response``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from flowbuilder.schema import ValidationError

logger = logging.getLogger(__name__)

# Keys under which the server has been seen to nest field errors.
_ERROR_LIST_KEYS: tuple[str, ...] = ("errors", "validation_errors", "details")


class FlowbuilderError(Exception):
    """Base class for every error raised by flowbuilder."""


def _decode_body(body: Any) -> Any:
    """Decode a response body to JSON. Unparseable bodies become {}."""
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        if not body.strip():
            return {}
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            logger.debug("Error body is not JSON; ignoring: %.200s", body)
            return {}
    return body if body is not None else {}


def parse_server_errors(details: Any) -> list[ValidationError]:
    """Extract field-level ValidationErrors from a server error payload.

    Accepted shapes:
      [{"field", "message", "code"}, ...]
      {"errors": [...]}  (also "validation_errors" / "details")
      {"field", "message", "code"}
    Entries without a ``field`` (flow-level issues, plain strings) are not
    field errors and are skipped.
    """
    if isinstance(details, list):
        errors: list[ValidationError] = []
        for item in details:
            if isinstance(item, dict) and item.get("field"):
                errors.append(ValidationError.from_dict(item))
        return errors

    if isinstance(details, dict):
        if details.get("field"):
            return [ValidationError.from_dict(details)]
        for key in _ERROR_LIST_KEYS:
            nested = details.get(key)
            if isinstance(nested, (list, dict)):
                found = parse_server_errors(nested)
                if found:
                    return found

    return []


class FlowApiError(FlowbuilderError):
    """A non-2xx response from the flow persistence API.

    status_code: HTTP status of the failed request.
    details:     Decoded JSON error body ({} when absent or not JSON).
    """

    def __init__(self, message: str, status_code: int, details: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details if details is not None else {}

    @classmethod
    def from_response(
        cls,
        operation: str,
        status_code: int,
        reason: str = "",
        body: Any = None,
    ) -> FlowApiError:
        """Build the error for a failed ``operation`` (e.g. "update flow")."""
        message = f"Failed to {operation}: {reason or status_code}"
        return cls(message, status_code, _decode_body(body))

    @property
    def is_conflict(self) -> bool:
        """True when the save was rejected for a stale ``version`` (409)."""
        return self.status_code == 409

    @property
    def validation_errors(self) -> list[ValidationError]:
        """Server-reported field errors carried in the body, if any."""
        return parse_server_errors(self.details)


class GeneratorError(FlowbuilderError):
    """A failure at the AI flow generator boundary.

    code: machine-readable reason. The generator service sends
          INVALID_JSON, INVALID_PROMPT, RATE_LIMITED, COMPONENT_CATALOG_FAILED,
          CLAUDE_RATE_LIMITED, CLAUDE_API_FAILED, NO_FLOW_GENERATED,
          VALIDATION_FAILED or INTERNAL_ERROR. Locally raised errors use
          INVALID_PROMPT, INVALID_GENERATOR_OUTPUT or CANDIDATE_NOT_READY.
          A body without a code gives GENERATION_FAILED. Any other code
          passes through unchanged.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.details = details

    @classmethod
    def from_response(cls, status_code: int, body: Any = None) -> GeneratorError:
        """Build the error for a failed generate-flow request."""
        decoded = _decode_body(body)
        if not isinstance(decoded, dict):
            decoded = {}
        message = decoded.get("error") or f"Failed to generate flow: HTTP {status_code}"
        return cls(
            message,
            code=decoded.get("code") or "GENERATION_FAILED",
            status_code=status_code,
            details=decoded,
        )
