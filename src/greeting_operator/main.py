import kopf
import logging
import kubernetes
import pydantic
from kubernetes.client.exceptions import ApiException

from greeting_operator.config import OperatorSettings
from greeting_operator.crd.generator import GreetingCRDManager
from greeting_operator.errors import (
    KindNotRegisteredError,
    StoreError,
    translate_api_exception,
)
from greeting_operator.kinds import GREETING_SERVICE
from greeting_operator.plugins.greetings import PLUGIN_NAME
from greeting_operator.plugins.registry import PluginRegistry
from greeting_operator.store.kube import KubernetesStore, load_kube_config

logger = logging.getLogger(__name__)

# Global plugin registry instance
plugin_registry = None

# Store client shared by all workers; built at startup, closed at cleanup
store = None


def configure_logging(settings):
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def ensure_crd_registered(store, settings, crd_manager=None, extensions_api=None):
    """Apply the CRD when asked to, then fail fast if it is still missing.

    Args:
        store: ResourceStore used to check the registration
        settings: OperatorSettings
        crd_manager: GreetingCRDManager (built on demand)
        extensions_api: ApiextensionsV1Api used to apply the CRD
    """
    if settings.manage_crds:
        crd_manager = crd_manager or GreetingCRDManager()
        if settings.generate_crd_files:
            logger.info("Generating CRD files")
            crd_manager.generate_all_crds(force=True)
        try:
            crd_manager.apply_crds_to_cluster(extensions_api)
        except ApiException as e:
            raise translate_api_exception(e, "apply CRDs") from e

    if not store.is_registered(GREETING_SERVICE):
        raise KindNotRegisteredError(GREETING_SERVICE)
    logger.info(f"Custom resource {GREETING_SERVICE.crd_name} is registered")


@kopf.on.startup()
async def startup_fn(settings: kopf.OperatorSettings, **kwargs):
    """Verify the CRD, load plugins and start the controller."""
    global plugin_registry, store

    logger.info("Greeting Operator is starting up...")

    try:
        operator_settings = OperatorSettings.from_env()
    except pydantic.ValidationError as e:
        raise kopf.PermanentError(f"Invalid operator configuration: {e}") from e

    try:
        load_kube_config()
    except kubernetes.config.ConfigException as e:
        raise kopf.PermanentError(f"Could not configure Kubernetes client: {e}") from e

    store = KubernetesStore(
        field_manager=operator_settings.field_manager,
        force_apply=operator_settings.force_apply,
    )

    try:
        ensure_crd_registered(store, operator_settings, extensions_api=store.extensions)
    except KindNotRegisteredError as e:
        logger.error(str(e))
        raise kopf.PermanentError(str(e)) from e
    except StoreError as e:
        raise kopf.TemporaryError(f"Could not verify CRD registration: {e}", delay=10) from e

    plugin_registry = PluginRegistry()

    discovered_count = plugin_registry.discover_plugins()
    if discovered_count == 0:
        raise kopf.PermanentError("No plugins available")

    init_results = plugin_registry.initialise_all_plugins()
    if not all(init_results.values()):
        failed = [name for name, ok in init_results.items() if not ok]
        raise kopf.PermanentError(f"Plugin initialization failed: {failed}")

    plugin_registry.register_all_handlers()

    settings.batching.worker_limit = operator_settings.worker_limit
    settings.posting.enabled = operator_settings.posting_enabled
    settings.watching.server_timeout = operator_settings.server_timeout

    greetings = plugin_registry.get_plugin(PLUGIN_NAME)
    await greetings.start_controller(store, operator_settings)

    logger.info(f"Initialised plugins: {list(init_results.keys())}")
    logger.info(f"Worker limit: {operator_settings.worker_limit}")
    logger.info(f"Resync period: {operator_settings.resync_period}s")
    logger.info(f"Cleanup mode: {operator_settings.cleanup_mode}")
    logger.info("Greeting Operator startup complete")


@kopf.on.cleanup()
async def cleanup_fn(**kwargs):
    """Stop the controller and release the store client."""
    global plugin_registry, store

    logger.info("Greeting Operator is shutting down...")

    if plugin_registry:
        greetings = plugin_registry.get_plugin(PLUGIN_NAME)
        if greetings is not None:
            await greetings.stop_controller()
        plugin_registry.shutdown_all_plugins()

    if store is not None:
        store.close()
        store = None

    logger.info("Greeting Operator shutdown complete")


def main(namespace=None):
    """Run the operator until interrupted."""
    operator_settings = OperatorSettings.from_env()
    configure_logging(operator_settings)
    namespace = namespace or operator_settings.watch_namespace

    # Importing the handler module registers the watch handlers with kopf
    from greeting_operator.handlers import greeting_handler  # noqa: F401

    namespaces = [namespace] if namespace else []
    try:
        kopf.run(clusterwide=not namespaces, namespaces=namespaces)
    except KeyboardInterrupt:
        logger.info("Operator stopped by user")


if __name__ == "__main__":
    main()
