"""GreetingService CRD models."""

from collections.abc import Mapping
from typing import Optional

from pydantic import Field, ValidationError, field_validator

from greeting_operator.crd.base import CRDSpec, CRDStatus
from greeting_operator.crd.registry import CRDRegistry
from greeting_operator.errors import SpecValidationError
from greeting_operator.kinds import GROUP, KIND, PLURAL, VERSION

DEFAULT_PORT = 3000


class GreetingServiceStatus(CRDStatus):
    """Status subresource, written only by the operator."""

    readyReplicas: Optional[int] = Field(
        default=None, description="Replica count the operator last applied"
    )


@CRDRegistry.register(
    GROUP,
    VERSION,
    KIND,
    PLURAL,
    status_model=GreetingServiceStatus,
    short_names=["gs"],
    printer_columns=[
        {"name": "Image", "type": "string", "jsonPath": ".spec.image"},
        {"name": "Replicas", "type": "integer", "jsonPath": ".spec.replicas"},
        {"name": "Ready", "type": "integer", "jsonPath": ".status.readyReplicas"},
        {"name": "Phase", "type": "string", "jsonPath": ".status.phase"},
        {"name": "Age", "type": "date", "jsonPath": ".metadata.creationTimestamp"},
    ],
)
class GreetingServiceSpec(CRDSpec):
    """GreetingService CRD specification."""

    image: str = Field(
        ..., min_length=1, strict=True, description="Container image to run"
    )
    replicas: int = Field(
        ..., ge=1, strict=True, description="Number of pods to keep running"
    )
    port: int = Field(
        default=DEFAULT_PORT,
        ge=1,
        le=65535,
        strict=True,
        description="Port the container listens on",
    )
    message: Optional[str] = Field(
        default=None, description="Greeting passed to the container"
    )

    @field_validator("image")
    @classmethod
    def image_not_blank(cls, value):
        if not value.strip():
            raise ValueError("must not be blank")
        if value != value.strip():
            raise ValueError("must not have leading or trailing whitespace")
        return value


def validate_spec(raw):
    """Validate a raw GreetingService spec.

    Args:
        raw: the ``spec`` mapping of a GreetingService object

    Returns:
        GreetingServiceSpec with defaults applied

    Raises:
        SpecValidationError: listing every failing field
    """
    if not isinstance(raw, Mapping):
        raise SpecValidationError(["spec: must be an object"])

    try:
        return GreetingServiceSpec.model_validate(dict(raw))
    except ValidationError as e:
        raise SpecValidationError(_format_errors(e)) from e


def _format_errors(error):
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "spec"
        messages.append(f"{location}: {item['msg']}")
    return messages
