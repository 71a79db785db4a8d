"""Base plugin architecture for the greeting operator."""

from abc import ABC, abstractmethod
import logging

logger = logging.getLogger(__name__)


class PluginBase(ABC):
    """Base class for all operator plugins."""

    def __init__(self):
        self._initialised = False
        self._models_registered = False

    @property
    @abstractmethod
    def name(self):
        """Unique name for this plugin."""

    @property
    @abstractmethod
    def version(self):
        """Plugin version."""

    @property
    @abstractmethod
    def description(self):
        """Human-readable description of what this plugin does."""

    @property
    @abstractmethod
    def models(self):
        """Return list of CRD models this plugin provides."""

    @property
    def initialised(self):
        return self._initialised

    def initialise(self):
        """Initialise the plugin. Called once during operator startup.

        Returns:
            bool: True if initialisation successful, False otherwise
        """
        if self._initialised:
            logger.warning(f"Plugin {self.name} already initialised")
            return True

        try:
            logger.info(f"Initialising plugin: {self.name} v{self.version}")

            if not self._models_registered:
                self._register_models()
                self._models_registered = True

            self._initialise_plugin()
        except Exception as e:
            logger.error(f"Failed to initialise plugin {self.name}: {e}")
            return False

        self._initialised = True
        logger.info(f"Plugin {self.name} initialised successfully")
        return True

    def _register_models(self):
        """Check this plugin's models are registered with the CRD registry."""
        for model in self.models:
            if not hasattr(model, "_crd_group"):
                raise ValueError(
                    f"Model {model.__name__} not decorated with @CRDRegistry.register"
                )

            logger.debug(f"Model {model.__name__} registered by plugin {self.name}")

    def _initialise_plugin(self):
        """Override this method for custom plugin initialization logic."""

    def shutdown(self):
        """Cleanup plugin resources. Called during operator shutdown."""
        if not self._initialised:
            return

        logger.info(f"Shutting down plugin: {self.name}")
        try:
            self._shutdown_plugin()
        finally:
            self._initialised = False

    def _shutdown_plugin(self):
        """Override this method for custom plugin shutdown logic."""

    @abstractmethod
    def register_handlers(self):
        """Register kopf handlers for this plugin.

        Importing the handler modules runs their kopf decorators.
        """

    def get_health_status(self):
        """Get health status of this plugin."""
        return {
            "name": self.name,
            "version": self.version,
            "initialised": self._initialised,
            "models_count": len(self.models),
            "status": "healthy" if self._initialised else "not_initialised",
        }

    def get_metadata(self):
        """Get plugin metadata."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "models": [model.__name__ for model in self.models],
        }
