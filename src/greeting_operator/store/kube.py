"""Resource store backed by the Kubernetes API."""

import logging

import kubernetes
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from greeting_operator.errors import TransientStoreError, translate_api_exception
from greeting_operator.kinds import DEPLOYMENT, MANAGER_NAME, SERVICE

from .base import ResourceStore

logger = logging.getLogger(__name__)

APPLY_PATCH = "application/apply-patch+yaml"
MERGE_PATCH = "application/merge-patch+json"


def load_kube_config():
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
        logger.info("Loaded local Kubernetes config")


class KubernetesStore(ResourceStore):
    """ResourceStore over the official kubernetes client.

    Owned objects are written with server-side apply under ``field_manager``;
    the custom resource status is merge-patched with a resourceVersion guard.
    """

    def __init__(self, api_client=None, field_manager=MANAGER_NAME, force_apply=True):
        self.api_client = api_client or kubernetes.client.ApiClient()
        self.field_manager = field_manager
        self.force_apply = force_apply
        self.core = kubernetes.client.CoreV1Api(self.api_client)
        self.apps = kubernetes.client.AppsV1Api(self.api_client)
        self.custom = kubernetes.client.CustomObjectsApi(self.api_client)
        self.extensions = kubernetes.client.ApiextensionsV1Api(self.api_client)

    @classmethod
    def from_config(cls, **kwargs):
        """Load cluster credentials and build a store."""
        load_kube_config()
        return cls(**kwargs)

    def close(self):
        self.api_client.close()

    def _to_dict(self, obj):
        return self.api_client.sanitize_for_serialization(obj)

    def _call(self, action, fn, *args, **kwargs):
        """Run a client call; returns None on 404, raises StoreError otherwise."""
        try:
            return fn(*args, **kwargs)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"{action}: not found")
                return None
            raise translate_api_exception(e, action) from e
        except Urllib3HTTPError as e:
            raise translate_api_exception(e, action) from e

    def get(self, kind, namespace, name):
        action = f"get {kind.kind} {namespace}/{name}"

        if kind.custom:
            return self._call(
                action,
                self.custom.get_namespaced_custom_object,
                kind.group,
                kind.version,
                namespace,
                kind.plural,
                name,
            )
        if kind == DEPLOYMENT:
            obj = self._call(action, self.apps.read_namespaced_deployment, name, namespace)
        elif kind == SERVICE:
            obj = self._call(action, self.core.read_namespaced_service, name, namespace)
        else:
            raise ValueError(f"Unsupported kind: {kind}")

        return self._to_dict(obj) if obj is not None else None

    def apply(self, kind, body):
        name = body["metadata"]["name"]
        namespace = body["metadata"]["namespace"]
        action = f"apply {kind.kind} {namespace}/{name}"
        options = {
            "field_manager": self.field_manager,
            "force": self.force_apply,
            "_content_type": APPLY_PATCH,
        }

        if kind.custom:
            obj = self._call(
                action,
                self.custom.patch_namespaced_custom_object,
                kind.group,
                kind.version,
                namespace,
                kind.plural,
                name,
                body,
                **options,
            )
        elif kind == DEPLOYMENT:
            obj = self._call(
                action, self.apps.patch_namespaced_deployment, name, namespace, body, **options
            )
        elif kind == SERVICE:
            obj = self._call(
                action, self.core.patch_namespaced_service, name, namespace, body, **options
            )
        else:
            raise ValueError(f"Unsupported kind: {kind}")

        if obj is None:
            # SSA creates missing objects, so a 404 means the namespace is gone
            raise TransientStoreError(f"{action} failed: namespace {namespace} not found", status=404)

        logger.debug(f"Applied {kind.kind} {namespace}/{name}")
        return obj if kind.custom else self._to_dict(obj)

    def _patch_custom(self, kind, namespace, name, body, action, status=False):
        fn = (
            self.custom.patch_namespaced_custom_object_status
            if status
            else self.custom.patch_namespaced_custom_object
        )
        return self._call(
            action,
            fn,
            kind.group,
            kind.version,
            namespace,
            kind.plural,
            name,
            body,
            _content_type=MERGE_PATCH,
        )

    def apply_status(self, kind, namespace, name, status, resource_version=None):
        if not kind.custom:
            raise ValueError(f"Status writes are only supported for custom kinds, not {kind}")

        body = {"status": status}
        if resource_version:
            body["metadata"] = {"resourceVersion": resource_version}

        return self._patch_custom(
            kind, namespace, name, body, f"update status of {kind.kind} {namespace}/{name}", status=True
        )

    def set_finalizers(self, kind, namespace, name, finalizers, resource_version=None):
        if not kind.custom:
            raise ValueError(f"Finalizers are only managed on custom kinds, not {kind}")

        metadata = {"finalizers": list(finalizers)}
        if resource_version:
            metadata["resourceVersion"] = resource_version

        return self._patch_custom(
            kind, namespace, name, {"metadata": metadata}, f"set finalizers on {kind.kind} {namespace}/{name}"
        )

    def delete(self, kind, namespace, name):
        action = f"delete {kind.kind} {namespace}/{name}"
        options = {"propagation_policy": "Background"}

        if kind.custom:
            result = self._call(
                action,
                self.custom.delete_namespaced_custom_object,
                kind.group,
                kind.version,
                namespace,
                kind.plural,
                name,
                **options,
            )
        elif kind == DEPLOYMENT:
            result = self._call(action, self.apps.delete_namespaced_deployment, name, namespace, **options)
        elif kind == SERVICE:
            result = self._call(action, self.core.delete_namespaced_service, name, namespace, **options)
        else:
            raise ValueError(f"Unsupported kind: {kind}")

        if result is None:
            return False
        logger.info(f"Deleted {kind.kind} {namespace}/{name}")
        return True

    def is_registered(self, kind):
        if not kind.custom:
            return True

        crd = self._call(
            f"read CRD {kind.crd_name}",
            self.extensions.read_custom_resource_definition,
            kind.crd_name,
        )
        if crd is None:
            return False

        served = [v.name for v in crd.spec.versions if v.served]
        if kind.version not in served:
            logger.error(f"CRD {kind.crd_name} does not serve version {kind.version} (serves {served})")
            return False
        return True
