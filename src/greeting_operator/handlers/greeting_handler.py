"""Kopf watch handlers feeding the GreetingService controller.

kopf owns the watch streams; each notification is converted to a
ChangeEvent and handed to the controller's work queue. Reconciliation
itself never runs inside these handlers.
"""

import logging

import kopf

from greeting_operator.events import ChangeEvent
from greeting_operator.kinds import GROUP, MANAGED_BY_LABEL, MANAGER_NAME, PLURAL, VERSION
from greeting_operator.plugins.greetings import PLUGIN_NAME

logger = logging.getLogger(__name__)

MANAGED_LABELS = {MANAGED_BY_LABEL: MANAGER_NAME}


def get_greetings_plugin():
    """Get the GreetingsPlugin from the operator's registry."""
    from greeting_operator.main import plugin_registry

    if not plugin_registry:
        return None
    return plugin_registry.get_plugin(PLUGIN_NAME)


async def dispatch(event, body):
    plugin = get_greetings_plugin()
    if plugin is None or plugin.controller is None:
        logger.debug("Controller not running, ignoring watch event")
        return None

    change = ChangeEvent.from_body(event.get("type"), body)
    key = await plugin.controller.handle_event(change)
    if key is not None:
        logger.debug(f"{change.type} {change.kind} {change.namespace}/{change.name} -> reconcile {key}")
    return key


@kopf.on.event(GROUP, VERSION, PLURAL)
async def greeting_service_event(event, body, **kwargs):
    """Any change to a GreetingService."""
    await dispatch(event, body)


@kopf.on.event("apps", "v1", "deployments", labels=MANAGED_LABELS)
async def owned_deployment_event(event, body, **kwargs):
    """Changes to Deployments this operator manages."""
    await dispatch(event, body)


@kopf.on.event("v1", "services", labels=MANAGED_LABELS)
async def owned_service_event(event, body, **kwargs):
    """Changes to Services this operator manages."""
    await dispatch(event, body)


@kopf.on.probe(id="plugins")
def plugins_probe(**kwargs):
    """Plugin health for the kopf liveness endpoint."""
    from greeting_operator.main import plugin_registry

    if not plugin_registry:
        return {}
    return plugin_registry.get_plugins_health_status()
