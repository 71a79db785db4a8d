"""CRD Registry for statically registered custom resource models."""

import importlib
import pkgutil
import logging

logger = logging.getLogger(__name__)


class CRDRegistry:
    """Global registry for CRD models."""

    _instance = None
    _initialised = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._models = {}
            cls._instance._initialised = False
        return cls._instance

    def __init__(self):
        if not self._initialised:
            self._models = {}
            self._initialised = True

    @classmethod
    def register(
        cls,
        group,
        version,
        kind,
        plural=None,
        scope="Namespaced",
        status_model=None,
        short_names=None,
        printer_columns=None,
    ):
        """Decorator to register CRD models.

        Args:
            group: API group (e.g., 'tutorial.example.com')
            version: API version (e.g., 'v1')
            kind: Kind name (e.g., 'GreetingService')
            plural: Plural name (defaults to kind.lower() + 's')
            scope: 'Namespaced' or 'Cluster'
            status_model: pydantic model describing the status subresource
            short_names: kubectl short names
            printer_columns: additionalPrinterColumns for kubectl get
        """

        def decorator(model_class):
            if not hasattr(model_class, "__annotations__"):
                raise ValueError(
                    f"CRD model {model_class.__name__} must have type annotations"
                )

            model_class._crd_group = group
            model_class._crd_version = version
            model_class._crd_kind = kind
            model_class._crd_plural = plural or f"{kind.lower()}s"
            model_class._crd_scope = scope

            registry_instance = cls()
            key = f"{group}/{version}/{kind}"

            registry_instance._models[key] = {
                "model": model_class,
                "status_model": status_model,
                "group": group,
                "version": version,
                "kind": kind,
                "plural": model_class._crd_plural,
                "scope": scope,
                "singular": kind.lower(),
                "short_names": list(short_names or [kind.lower()[:3]]),
                "printer_columns": list(printer_columns or []),
            }

            logger.debug(f"Registered CRD: {key}")
            return model_class

        return decorator

    def discover_models(self, package_paths=None):
        """Import model packages so their register decorators run.

        Args:
            package_paths: List of package paths to search (e.g., ['greeting_operator.models'])
        """
        if package_paths is None:
            package_paths = ["greeting_operator.models"]

        for package_path in package_paths:
            self._discover_in_package(package_path)

    def _discover_in_package(self, package_path):
        """Import every submodule of a package."""
        try:
            package = importlib.import_module(package_path)
        except ImportError:
            logger.warning(f"Package {package_path} not found")
            return

        if hasattr(package, "__path__"):
            for _, module_name, _ in pkgutil.iter_modules(package.__path__):
                full_module_name = f"{package_path}.{module_name}"
                try:
                    importlib.import_module(full_module_name)
                    logger.debug(f"Discovered models in {full_module_name}")
                except ImportError as e:
                    logger.warning(f"Could not import {full_module_name}: {e}")

    def get_all_models(self):
        """Get all registered CRD models."""
        return self._models.copy()

    def get_model_by_key(self, group, version, kind):
        """Get a specific CRD model by its key."""
        key = f"{group}/{version}/{kind}"
        return self._models.get(key)

    def validate_model_schema(self, model_class):
        """Validate that a model can be converted to OpenAPI schema."""
        try:
            schema = model_class.model_json_schema()
        except Exception as e:
            logger.error(f"Schema validation failed for {model_class.__name__}: {e}")
            return False
        return "properties" in schema and isinstance(schema["properties"], dict)
