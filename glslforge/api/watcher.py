import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .plugins import PLUGIN_FILE_SUFFIX, alias_from_filename

logger = logging.getLogger(__name__)


class PluginWatcher:
    """
    Watches a plugin directory and reloads plugin modules that change.

    Events arrive on the observer thread and only mark files as pending; the
    reload itself happens in `poll()`, which the host calls from its own loop
    so the registry is never touched concurrently.

    Args:
        registry: PluginRegistry that owns the plugins.
        root: Directory holding one sub-directory per plugin.
        on_reload: Called with the alias after each successful reload, e.g. to
                   clear shader caches.
    """
    def __init__(self, registry, root, on_reload=None):
        self.registry = registry
        self.root = str(root)
        self.on_reload = on_reload
        self.pending = set()
        self.observer = None

    def _handler(self):
        watcher = self

        class ChangeHandler(FileSystemEventHandler):
            def on_modified(self, event):
                if not event.is_directory and str(event.src_path).endswith(PLUGIN_FILE_SUFFIX):
                    watcher.pending.add(str(event.src_path))
            on_created = on_modified

        return ChangeHandler()

    def start(self):
        if self.observer is not None:
            return
        self.observer = Observer()
        self.observer.schedule(self._handler(), self.root, recursive=True)
        self.observer.daemon = True
        self.observer.start()
        logger.info("Watching '%s' for plugin changes...", Path(self.root).name)

    def stop(self):
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None

    def poll(self) -> int:
        """Reloads every plugin file changed since the last poll."""
        reloaded = 0
        while self.pending:
            path = self.pending.pop()
            if not os.path.isfile(path):
                continue
            alias = alias_from_filename(path)
            logger.info("Reloading plugin '%s'...", alias)
            if alias in self.registry:
                self.registry.unload(alias)
            if self.registry.load(path, alias):
                reloaded += 1
                if self.on_reload is not None:
                    self.on_reload(alias)
        return reloaded
