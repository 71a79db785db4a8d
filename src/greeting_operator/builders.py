"""Desired Deployment and Service for a GreetingService.

Everything here is pure: the same spec always yields the same manifests.
"""

from kubernetes import client

from greeting_operator.kinds import DEPLOYMENT, GROUP, MANAGED_BY_LABEL, MANAGER_NAME, SERVICE

CONTAINER_NAME = "greeting"
SERVICE_PORT = 80
MESSAGE_ANNOTATION = f"{GROUP}/message"

_serializer = client.ApiClient()


def to_manifest(obj):
    """Serialize a kubernetes client model into a plain camelCase dict."""
    return _serializer.sanitize_for_serialization(obj)


def canonical_labels(name):
    """Labels shared by the Deployment, its pods and the Service selector."""
    return {
        "app": name,
        "app.kubernetes.io/name": "greeting-service",
        "app.kubernetes.io/instance": name,
        MANAGED_BY_LABEL: MANAGER_NAME,
    }


def owner_reference(parent):
    """Controller owner reference pointing back at a GreetingService object."""
    metadata = parent["metadata"]
    return {
        "apiVersion": parent["apiVersion"],
        "kind": parent["kind"],
        "name": metadata["name"],
        "uid": metadata["uid"],
        "controller": True,
        "blockOwnerDeletion": True,
    }


def _metadata(name, namespace, labels, owner, annotations=None):
    return client.V1ObjectMeta(
        name=name,
        namespace=namespace,
        labels=dict(labels),
        annotations=annotations or None,
        owner_references=[owner] if owner else None,
    )


def _container_env(spec):
    env = [client.V1EnvVar(name="PORT", value=str(spec.port))]
    if spec.message is not None:
        env.append(client.V1EnvVar(name="GREETING_MESSAGE", value=spec.message))
    return env


def build_deployment(name, namespace, spec, owner=None):
    """Build the Deployment manifest.

    Args:
        name: GreetingService name, reused as the Deployment name
        namespace: target namespace
        spec: validated GreetingServiceSpec
        owner: owner reference dict, or None to build an unowned preview
    """
    labels = canonical_labels(name)
    annotations = {}
    if spec.message is not None:
        annotations[MESSAGE_ANNOTATION] = spec.message

    deployment = client.V1Deployment(
        api_version=DEPLOYMENT.api_version,
        kind=DEPLOYMENT.kind,
        metadata=_metadata(name, namespace, labels, owner, annotations),
        spec=client.V1DeploymentSpec(
            replicas=spec.replicas,
            selector=client.V1LabelSelector(match_labels=dict(labels)),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=dict(labels)),
                spec=client.V1PodSpec(
                    containers=[
                        client.V1Container(
                            name=CONTAINER_NAME,
                            image=spec.image,
                            ports=[
                                client.V1ContainerPort(
                                    name="http",
                                    container_port=spec.port,
                                    protocol="TCP",
                                )
                            ],
                            env=_container_env(spec),
                        )
                    ]
                ),
            ),
        ),
    )
    return to_manifest(deployment)


def build_service(name, namespace, spec, owner=None):
    """Build the Service manifest routing port 80 to the container port."""
    labels = canonical_labels(name)

    service = client.V1Service(
        api_version=SERVICE.api_version,
        kind=SERVICE.kind,
        metadata=_metadata(name, namespace, labels, owner),
        spec=client.V1ServiceSpec(
            type="ClusterIP",
            selector=dict(labels),
            ports=[
                client.V1ServicePort(
                    name="http",
                    port=SERVICE_PORT,
                    target_port=spec.port,
                    protocol="TCP",
                )
            ],
        ),
    )
    return to_manifest(service)


def build_owned_objects(parent, spec):
    """Desired (kind, manifest) pairs for a GreetingService object."""
    metadata = parent["metadata"]
    owner = owner_reference(parent)
    name = metadata["name"]
    namespace = metadata["namespace"]
    return [
        (DEPLOYMENT, build_deployment(name, namespace, spec, owner)),
        (SERVICE, build_service(name, namespace, spec, owner)),
    ]
