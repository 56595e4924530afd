import importlib.util
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .errors import PluginLoadError

logger = logging.getLogger(__name__)

PLUGIN_ABI_VERSION = 1
PLUGIN_FILE_SUFFIX = "_plugin.py"

ABI_SYMBOL = "get_plugin_abi_version"
CREATE_SYMBOL = "create_plugin"
DESTROY_SYMBOL = "destroy_plugin"
INFO_SYMBOL = "get_plugin_info"


@dataclass(frozen=True)
class FunctionOverload:
    return_type: str
    param_types: tuple = ()


@dataclass(frozen=True)
class GLSLFunctionMetadata:
    """Describes one GLSL function shipped by a plugin."""
    name: str
    file_path: str
    category: str = ""
    overloads: tuple = field(default_factory=tuple)


class GLSLPlugin:
    """
    Base class for the function table a plugin module hands out.

    Subclasses set `name`, `version`, `author` and fill `functions` with
    GLSLFunctionMetadata entries. `file_path` of each entry is relative to the
    resource directory the registry assigns through `set_path`.
    """
    name = "unnamed"
    version = "0.0.0"
    author = "unknown"

    def __init__(self, functions=None):
        self.functions = list(functions or [])
        self._path = ""

    def set_path(self, path: str):
        self._path = path

    def get_path(self) -> str:
        return self._path

    def find_function(self, name: str) -> Optional[GLSLFunctionMetadata]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    def get_all_function_names(self) -> List[str]:
        return [fn.name for fn in self.functions]

    def get_functions_by_category(self, category: str) -> List[str]:
        return [fn.name for fn in self.functions if fn.category == category]

    def get_functions_by_return_type(self, return_type: str) -> List[str]:
        return [fn.name for fn in self.functions
                if any(o.return_type == return_type for o in fn.overloads)]

    def get_function_count(self) -> int:
        return len(self.functions)


class PluginLibrary:
    """A plugin module opened from a file and registered under a private name."""
    _counter = 0

    def __init__(self, path: str, module, module_name: str):
        self.path = path
        self.module = module
        self.module_name = module_name

    @classmethod
    def open(cls, path: str) -> 'PluginLibrary':
        if not os.path.isfile(path):
            raise PluginLoadError(f"Failed to load library: {path} (no such file)")
        cls._counter += 1
        module_name = f"glslforge_plugin_{Path(path).stem}_{cls._counter}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise PluginLoadError(f"Failed to load library: {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise PluginLoadError(f"Failed to load library: {path} ({e})") from e
        return cls(path, module, module_name)

    def symbol(self, name: str):
        if self.module is None:
            return None
        fn = getattr(self.module, name, None)
        return fn if callable(fn) else None

    def close(self):
        if self.module is not None:
            sys.modules.pop(self.module_name, None)
            self.module = None

    @property
    def is_open(self) -> bool:
        return self.module is not None


class PluginHandle:
    """
    Owns a library together with the instance it created.

    `release()` destroys the instance through the library's own destructor and
    then closes the library. It is safe to call more than once.
    """
    def __init__(self, library: PluginLibrary):
        self.library = library
        self.instance = None

    def release(self):
        if self.instance is not None:
            destroy = self.library.symbol(DESTROY_SYMBOL)
            instance, self.instance = self.instance, None
            if destroy is not None:
                try:
                    destroy(instance)
                except Exception as e:
                    logger.error("destroy_plugin failed for %s: %s", self.library.path, e)
        self.library.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.release()
        return False


@dataclass
class PluginRegistration:
    alias: str
    handle: PluginHandle
    path: str

    @property
    def plugin(self) -> GLSLPlugin:
        return self.handle.instance

    @property
    def info(self) -> str:
        return self.handle.library.symbol(INFO_SYMBOL)()


def resource_dir(path: str) -> str:
    """Directory of a library path with a trailing slash."""
    parent = os.path.dirname(path)
    return parent + "/" if parent else "./"


def find_plugin_files(root) -> List[str]:
    """Returns every plugin module one directory below `root`, sorted."""
    root = Path(root)
    if not root.is_dir():
        logger.warning("Plugin directory does not exist: %s", root)
        return []
    found = []
    for sub in sorted(p for p in root.iterdir() if p.is_dir()):
        found.extend(str(f) for f in sorted(sub.glob(f"*{PLUGIN_FILE_SUFFIX}")))
    return found


def alias_from_filename(path: str) -> str:
    """`libnoise_plugin.py` -> `noise`."""
    stem = Path(path).name
    if stem.startswith("lib"):
        stem = stem[3:]
    if stem.endswith(PLUGIN_FILE_SUFFIX):
        stem = stem[:-len(PLUGIN_FILE_SUFFIX)]
    return stem


class PluginRegistry:
    """
    Loads plugin modules and answers function metadata queries.

    Args:
        builtins: The host's BuiltinRegistry, used to report plugin functions
                  that shadow GLSL builtins.
        abi_version: The ABI version plugins must report, if they report one.
    """
    def __init__(self, builtins=None, abi_version: int = PLUGIN_ABI_VERSION):
        self.builtins = builtins
        self.abi_version = abi_version
        self._plugins = {}

    def __len__(self):
        return len(self._plugins)

    def __contains__(self, alias):
        return alias in self._plugins

    # --- Loading ---

    def load(self, path: str, alias: str = None) -> bool:
        """Loads one plugin module. Returns False on any failure."""
        try:
            registration = self._load(str(path), alias)
        except PluginLoadError as e:
            logger.error("%s", e)
            return False

        plugin = registration.plugin
        self._plugins[registration.alias] = registration
        logger.info("Loaded plugin: %s v%s by %s (%d functions)",
                    plugin.name, plugin.version, plugin.author, plugin.get_function_count())
        self._log_builtin_conflicts(registration.alias)
        return True

    def _load(self, path: str, alias: str) -> PluginRegistration:
        library = PluginLibrary.open(path)
        with PluginHandle(library) as handle:
            get_abi = library.symbol(ABI_SYMBOL)
            if get_abi is not None:
                try:
                    version = get_abi()
                except Exception as e:
                    raise PluginLoadError(f"{ABI_SYMBOL} failed in {path}: {e}") from e
                if version != self.abi_version:
                    raise PluginLoadError(
                        f"Plugin ABI version mismatch in {path}: expected {self.abi_version}, got {version}")

            create = library.symbol(CREATE_SYMBOL)
            if create is None or library.symbol(INFO_SYMBOL) is None:
                raise PluginLoadError(f"Plugin {path} is missing {CREATE_SYMBOL} or {INFO_SYMBOL}")

            try:
                handle.instance = create()
            except Exception as e:
                raise PluginLoadError(f"{CREATE_SYMBOL} failed in {path}: {e}") from e
            if handle.instance is None:
                raise PluginLoadError(f"Failed to create plugin instance from {path}")

            try:
                handle.instance.set_path(resource_dir(path))
                alias = alias or handle.instance.name
            except AttributeError as e:
                raise PluginLoadError(f"{CREATE_SYMBOL} in {path} did not return a GLSLPlugin: {e}") from e
            if alias in self._plugins:
                raise PluginLoadError(f"Plugin with alias '{alias}' already loaded")

            return PluginRegistration(alias, handle, path)

    def load_all(self, root=None) -> int:
        """Loads every plugin found under `root`, aliasing each by file name."""
        root = root or os.environ.get("GLSLFORGE_PLUGIN_DIR", "plugins")
        loaded = 0
        for path in find_plugin_files(root):
            if self.load(path, alias_from_filename(path)):
                loaded += 1
        logger.info("Loaded %d plugin(s) from %s", loaded, root)
        return loaded

    def unload(self, alias: str) -> bool:
        registration = self._plugins.pop(alias, None)
        if registration is None:
            logger.warning("Plugin not found: %s", alias)
            return False
        registration.handle.release()
        logger.info("Unloaded plugin: %s", alias)
        return True

    def unload_all(self):
        for alias in list(self._plugins):
            self.unload(alias)

    # --- Queries ---

    def get_plugin(self, alias: str) -> Optional[GLSLPlugin]:
        registration = self._plugins.get(alias)
        return registration.plugin if registration else None

    def find_function(self, name: str, plugin: str = None) -> Optional[GLSLFunctionMetadata]:
        if plugin is not None:
            instance = self.get_plugin(plugin)
            return instance.find_function(name) if instance else None
        for registration in self._plugins.values():
            fn = registration.plugin.find_function(name)
            if fn is not None:
                return fn
        return None

    def owner_of(self, name: str) -> Optional[str]:
        """Alias of the first plugin that provides `name`."""
        for alias, registration in self._plugins.items():
            if registration.plugin.find_function(name) is not None:
                return alias
        return None

    def get_loaded_plugins(self) -> List[str]:
        return [f"{alias} ({r.plugin.name} v{r.plugin.version})" for alias, r in self._plugins.items()]

    def get_all_functions(self) -> List[str]:
        return [f"{alias}::{name}"
                for alias, r in self._plugins.items()
                for name in r.plugin.get_all_function_names()]

    def get_functions_by_plugin(self) -> dict:
        return {alias: r.plugin.get_all_function_names() for alias, r in self._plugins.items()}

    def get_plugin_infos(self) -> dict:
        return {alias: r.info for alias, r in self._plugins.items()}

    def get_plugin_paths(self) -> dict:
        return {alias: r.plugin.get_path() for alias, r in self._plugins.items()}

    def get_plugin_statistics(self) -> dict:
        return {alias: r.plugin.get_function_count() for alias, r in self._plugins.items()}

    def find_functions_by_category(self, category: str) -> List[str]:
        return [f"{alias}::{name}"
                for alias, r in self._plugins.items()
                for name in r.plugin.get_functions_by_category(category)]

    def find_functions_by_return_type(self, return_type: str) -> List[str]:
        return [f"{alias}::{name}"
                for alias, r in self._plugins.items()
                for name in r.plugin.get_functions_by_return_type(return_type)]

    # --- Builtin conflicts ---

    def has_builtin_conflict(self, name: str) -> bool:
        return bool(self.builtins and self.builtins.is_builtin(name) and self.find_function(name))

    def get_all_builtin_conflicts(self) -> List[str]:
        if self.builtins is None:
            return []
        return [f"{alias}::{name}"
                for alias, r in self._plugins.items()
                for name in r.plugin.get_all_function_names()
                if self.builtins.is_builtin(name)]

    def _log_builtin_conflicts(self, alias: str):
        if self.builtins is None:
            return
        names = [n for n in self._plugins[alias].plugin.get_all_function_names() if self.builtins.is_builtin(n)]
        for name in names:
            logger.warning("Plugin '%s' function '%s' conflicts with GLSL built-in - behavior is undetermined",
                           alias, name)
        if names:
            logger.warning("Plugin '%s' has %d built-in conflict(s)", alias, len(names))

    # --- GLSL sources ---

    def resolve_source_path(self, name: str, plugin: str = None) -> Optional[str]:
        """Absolute location of a function's GLSL file inside its plugin's resource directory."""
        alias = plugin or self.owner_of(name)
        instance = self.get_plugin(alias) if alias else None
        metadata = instance.find_function(name) if instance else None
        if metadata is None:
            return None
        return os.path.join(instance.get_path(), metadata.file_path)

    def load_source(self, name: str, plugin: str = None) -> str:
        """GLSL text for `name`, or an empty string if it cannot be read."""
        path = self.resolve_source_path(name, plugin)
        if path is None:
            return ""
        try:
            with open(path, 'r') as f:
                return f.read()
        except OSError as e:
            logger.error("Failed to read GLSL file %s: %s", path, e)
            return ""
