"""GreetingService plugin for the greeting operator."""

import logging

from greeting_operator.controller import Controller

from .base import PluginBase

logger = logging.getLogger(__name__)

PLUGIN_NAME = "greetings"


class GreetingsPlugin(PluginBase):
    """Reconciles GreetingService objects into a Deployment and a Service."""

    def __init__(self):
        super().__init__()
        self.controller = None

    @property
    def name(self):
        return PLUGIN_NAME

    @property
    def version(self):
        return "1.0.0"

    @property
    def description(self):
        return "Runs a Deployment and Service for every GreetingService resource"

    @property
    def models(self):
        from greeting_operator.models.greeting import GreetingServiceSpec

        return [GreetingServiceSpec]

    def register_handlers(self):
        """Register kopf handlers for GreetingService and its owned objects."""
        logger.info("Registering greetings handlers...")

        # Importing the module runs the kopf decorators
        from greeting_operator.handlers import greeting_handler  # noqa: F401

    async def start_controller(self, store, settings):
        """Build the controller around ``store`` and start its workers."""
        if self.controller is not None:
            logger.warning("Greetings controller already running")
            return self.controller

        self.controller = Controller(store, settings)
        await self.controller.start()
        return self.controller

    async def stop_controller(self, grace_period=None):
        if self.controller is None:
            return
        await self.controller.stop(grace_period)
        self.controller = None

    def get_health_status(self):
        health = super().get_health_status()
        health["controller_running"] = bool(self.controller and self.controller.running)
        if self.controller is not None:
            health["queue_depth"] = len(self.controller.queue)
        return health
