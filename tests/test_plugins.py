from greeting_operator.plugins.base import PluginBase
from greeting_operator.plugins.greetings import PLUGIN_NAME, GreetingsPlugin


class TestRegistry:
    def test_discovers_builtin_plugin(self, plugin_registry):
        assert plugin_registry.discover_plugins(builtin_only=True) == 1
        assert plugin_registry.list_plugin_names() == [PLUGIN_NAME]
        assert isinstance(plugin_registry.get_plugin(PLUGIN_NAME), GreetingsPlugin)

    def test_rejects_duplicates_and_non_plugins(self, plugin_registry):
        assert plugin_registry.register_plugin(GreetingsPlugin())
        assert not plugin_registry.register_plugin(GreetingsPlugin())
        assert not plugin_registry.register_plugin(object())

    def test_initialise_and_health(self, plugin_registry):
        plugin_registry.register_plugin(GreetingsPlugin())

        assert plugin_registry.initialise_all_plugins() == {PLUGIN_NAME: True}

        health = plugin_registry.get_plugins_health_status()[PLUGIN_NAME]
        assert health["status"] == "healthy"
        assert health["models_count"] == 1
        assert health["controller_running"] is False

        metadata = plugin_registry.get_plugins_metadata()
        assert metadata[0]["models"] == ["GreetingServiceSpec"]

    def test_undecorated_model_fails_initialisation(self, plugin_registry):
        class Undecorated:
            pass

        class BrokenPlugin(PluginBase):
            name = "broken"
            version = "0.0.1"
            description = "uses a model missing from the CRD registry"
            models = [Undecorated]

            def register_handlers(self):
                pass

        plugin_registry.register_plugin(BrokenPlugin())

        assert plugin_registry.initialise_all_plugins() == {"broken": False}

    def test_registry_is_a_singleton(self, plugin_registry):
        plugin_registry.register_plugin(GreetingsPlugin())
        assert type(plugin_registry)().get_plugin(PLUGIN_NAME) is not None


class TestGreetingsPlugin:
    async def test_controller_lifecycle(self, store, settings):
        plugin = GreetingsPlugin()
        plugin.initialise()

        controller = await plugin.start_controller(store, settings)
        assert controller.running
        assert await plugin.start_controller(store, settings) is controller
        assert plugin.get_health_status()["controller_running"] is True
        assert plugin.get_health_status()["queue_depth"] == 0

        await plugin.stop_controller(grace_period=1)
        assert plugin.controller is None
        assert not controller.running
