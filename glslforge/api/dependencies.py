import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import FunctionNotFoundError, UnmatchedParenthesesError

logger = logging.getLogger(__name__)

_CALL = re.compile(r"\b([a-zA-Z_]\w*)\s*\(")


def split_arguments(text: str) -> List[str]:
    """Splits at commas that are not nested inside parentheses."""
    args, depth, current = [], 0, []
    for ch in text:
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
        if ch == ',' and depth == 0:
            args.append(''.join(current).strip())
            current = []
        else:
            current.append(ch)
    args.append(''.join(current).strip())
    return [a for a in args if a]


def matching_paren(text: str, open_index: int) -> int:
    """Index of the `)` closing the `(` at `open_index`."""
    depth = 0
    for i in range(open_index, len(text)):
        if text[i] == '(':
            depth += 1
        elif text[i] == ')':
            depth -= 1
            if depth == 0:
                return i
    raise UnmatchedParenthesesError(f"Unmatched parentheses in: {text[open_index - 1:]}")


@dataclass
class FunctionCall:
    name: str
    start: int
    end: int
    arguments: List[str] = field(default_factory=list)


class FunctionKind(enum.Enum):
    BUILTIN = "builtin"
    PLUGIN = "plugin"
    UNKNOWN = "unknown"


@dataclass
class ClassifiedFunction:
    name: str
    kind: FunctionKind
    plugin: Optional[str] = None
    reason: str = ""


@dataclass
class DependencyAnalysis:
    main_function: str
    arguments: List[str] = field(default_factory=list)
    plugin_functions: set = field(default_factory=set)
    builtin_functions: set = field(default_factory=set)
    function_calls: Dict[str, FunctionCall] = field(default_factory=dict)
    classified: Dict[str, ClassifiedFunction] = field(default_factory=dict)
    is_valid: bool = True
    error: str = ""


class FunctionDependencyAnalyzer:
    """
    Finds every function called from a main call's argument text and classifies it.

    Classification is recomputed on each call since plugins may be loaded or
    unloaded between requests.
    """
    def __init__(self, plugins, builtins):
        self.plugins = plugins
        self.builtins = builtins

    def extract_function_calls(self, text: str) -> List[FunctionCall]:
        """Every call in `text`, nested ones included; a call with no closing paren is skipped."""
        calls = []
        for match in _CALL.finditer(text):
            open_index = match.end() - 1
            try:
                close_index = matching_paren(text, open_index)
            except UnmatchedParenthesesError as e:
                logger.warning("%s", e)
                continue
            inner = text[open_index + 1:close_index]
            calls.append(FunctionCall(match.group(1), match.start(), close_index + 1, split_arguments(inner)))
        return calls

    def _discover(self, arguments, analysis: DependencyAnalysis, found: set):
        for arg in arguments:
            for call in self.extract_function_calls(arg):
                if call.name not in found:
                    found.add(call.name)
                    analysis.function_calls[call.name] = call
                self._discover(call.arguments, analysis, found)

    def classify(self, name: str) -> ClassifiedFunction:
        if self.builtins.is_builtin(name):
            return ClassifiedFunction(name, FunctionKind.BUILTIN)
        if self.plugins.find_function(name) is not None:
            owner = self.plugins.owner_of(name)
            return ClassifiedFunction(name, FunctionKind.PLUGIN, owner or "unknown_plugin")
        return ClassifiedFunction(name, FunctionKind.UNKNOWN,
                                  reason=str(FunctionNotFoundError(name)))

    def analyze(self, function_name: str, raw_arguments: str) -> DependencyAnalysis:
        return self.analyze_arguments(function_name, split_arguments(raw_arguments))

    def analyze_arguments(self, function_name: str, arguments: List[str]) -> DependencyAnalysis:
        analysis = DependencyAnalysis(function_name, list(arguments))
        found = set()
        self._discover(arguments, analysis, found)

        for name in [function_name] + sorted(found):
            classified = self.classify(name)
            analysis.classified[name] = classified
            if classified.kind is FunctionKind.BUILTIN:
                analysis.builtin_functions.add(name)
            elif classified.kind is FunctionKind.PLUGIN:
                analysis.plugin_functions.add(name)
            else:
                analysis.is_valid = False
                analysis.error = classified.reason
                logger.error("%s", classified.reason)
                return analysis
        return analysis
