"""Resource kinds the operator reads, writes and watches."""

from dataclasses import dataclass

GROUP = "tutorial.example.com"
VERSION = "v1"
KIND = "GreetingService"
PLURAL = "greetingservices"

MANAGER_NAME = "greeting-operator"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
FINALIZER = f"{GROUP}/cleanup"


@dataclass(frozen=True)
class ResourceKind:
    """Identifies one API resource type (group/version/plural)."""

    group: str
    version: str
    plural: str
    kind: str
    custom: bool = False

    @property
    def api_version(self):
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def crd_name(self):
        return f"{self.plural}.{self.group}"

    def __str__(self):
        return f"{self.kind}.{self.api_version}"


GREETING_SERVICE = ResourceKind(GROUP, VERSION, PLURAL, KIND, custom=True)
DEPLOYMENT = ResourceKind("apps", "v1", "deployments", "Deployment")
SERVICE = ResourceKind("", "v1", "services", "Service")

OWNED_KINDS = (DEPLOYMENT, SERVICE)
