import logging

from .builtins import BuiltinRegistry
from .commands import CommandHandler, GlobalOutput
from .compiler import ModernGLCompiler
from .composition import ShaderCompositionEngine
from .manager import ShaderManager
from .plugins import PluginRegistry
from .watcher import PluginWatcher

logger = logging.getLogger(__name__)


class ShaderHost:
    """
    Wires one instance of every component together.

    The builtin registry is built here once and injected everywhere else.

    Args:
        plugin_dir: Directory to load plugins from; nothing is loaded if None.
        ctx: moderngl context for the default compiler.
        compiler: Replaces the moderngl compiler entirely, e.g. in tests.
        watch: Reload plugins when their files change.
    """
    def __init__(self, plugin_dir=None, ctx=None, compiler=None, watch=False):
        self.builtins = BuiltinRegistry()
        self.plugins = PluginRegistry(self.builtins)
        self.compiler = compiler or ModernGLCompiler(ctx)
        self.manager = ShaderManager(self.plugins, self.builtins, self.compiler)
        self.engine = ShaderCompositionEngine(self.plugins, self.builtins, self.compiler)
        self.output = GlobalOutput()
        self.commands = CommandHandler(self.manager, self.engine, self.output)
        self.watcher = None

        if plugin_dir is not None:
            self.plugins.load_all(plugin_dir)
            if watch:
                self.watcher = PluginWatcher(self.plugins, plugin_dir, on_reload=self._on_plugin_reload)
                self.watcher.start()

    def _on_plugin_reload(self, alias):
        logger.info("Plugin '%s' changed, clearing shader caches", alias)
        if self.output.current is not None:
            self.output.disconnect()
        self.manager.clear_cache()
        self.engine.clear_cache()

    def tick(self, elapsed: float, width: float, height: float):
        """One host frame: apply pending plugin reloads, then refresh output uniforms."""
        if self.watcher is not None:
            self.watcher.poll()
        self.output.update(elapsed, width, height)

    def shutdown(self):
        if self.watcher is not None:
            self.watcher.stop()
        if self.output.current is not None:
            self.output.disconnect()
        self.manager.clear_cache()
        self.engine.clear_all()
        self.plugins.unload_all()
