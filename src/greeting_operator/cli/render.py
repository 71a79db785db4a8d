"""Offline rendering of the objects a GreetingService produces."""

from greeting_operator.builders import build_deployment, build_service
from greeting_operator.errors import SpecValidationError
from greeting_operator.kinds import GROUP, KIND
from greeting_operator.models.greeting import validate_spec


def is_greeting_service(document):
    api_version = document.get("apiVersion", "")
    return document.get("kind") == KIND and api_version.startswith(f"{GROUP}/")


def render_manifests(documents, default_namespace="default"):
    """Render the Deployment and Service for every GreetingService document.

    Raises:
        SpecValidationError: a GreetingService has an invalid spec
    """
    rendered = []
    for document in documents:
        if not isinstance(document, dict) or not is_greeting_service(document):
            continue

        metadata = document.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise SpecValidationError(["metadata.name: required"])
        namespace = metadata.get("namespace") or default_namespace
        spec = validate_spec(document.get("spec"))

        rendered.append(build_deployment(name, namespace, spec))
        rendered.append(build_service(name, namespace, spec))
    return rendered
