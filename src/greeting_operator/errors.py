"""Exception types raised by the greeting operator."""

import logging

from urllib3.exceptions import HTTPError as Urllib3HTTPError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {409, 429, 500, 502, 503, 504}
VALIDATION_STATUS_CODES = {400, 422}
ACCESS_STATUS_CODES = {401, 403}


class OperatorError(Exception):
    """Base class for all operator errors."""


class StoreError(OperatorError):
    """A call to the resource store failed."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class TransientStoreError(StoreError):
    """Conflict, throttling, server or network failure. Safe to retry."""


class StoreValidationError(StoreError):
    """The store rejected a write as invalid."""


class StoreAccessError(StoreError):
    """The operator is not allowed to perform a store call."""


class SpecValidationError(OperatorError):
    """A GreetingService spec failed validation.

    Attributes:
        errors: list of ``"field: reason"`` strings, one per failing field
    """

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid spec")


class KindNotRegisteredError(OperatorError):
    """The custom resource definition is missing from the cluster."""

    def __init__(self, kind):
        self.kind = kind
        super().__init__(
            f"Custom resource kind {kind.kind} ({kind.plural}.{kind.group}) is not "
            f"registered in the cluster. Register it first, e.g. "
            f"`greeting-operator generate-crds -o crds && kubectl apply -f crds/`, "
            f"or start the operator with MANAGE_CRDS=true."
        )


def translate_api_exception(exc, action):
    """Map a kubernetes client failure onto the operator's store errors.

    Args:
        exc: ApiException or urllib3 error raised by the client
        action: short description of the call, used in the message
    """
    if isinstance(exc, Urllib3HTTPError):
        return TransientStoreError(f"{action} failed: {exc}")

    status = getattr(exc, "status", None)
    reason = getattr(exc, "reason", None) or str(exc)
    message = f"{action} failed ({status}): {reason}"

    if status in VALIDATION_STATUS_CODES:
        return StoreValidationError(message, status=status)
    if status in ACCESS_STATUS_CODES:
        return StoreAccessError(message, status=status)
    if status in TRANSIENT_STATUS_CODES or status is None or status >= 500:
        return TransientStoreError(message, status=status)

    logger.debug(f"Unclassified API status {status} for {action}")
    return StoreError(message, status=status)


__all__ = [
    "OperatorError",
    "StoreError",
    "TransientStoreError",
    "StoreValidationError",
    "StoreAccessError",
    "SpecValidationError",
    "KindNotRegisteredError",
    "translate_api_exception",
]
