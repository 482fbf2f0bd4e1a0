# promptcomposer/core/template_flattener.py
from dataclasses import dataclass, field
from typing import AbstractSet, FrozenSet, List, Optional, Sequence, Set, Tuple

from loguru import logger

from .placeholders import (PROMPT_RESPONSE, RESERVED_NAMES, format_placeholder, iter_placeholders,
                           replace_named, search_placeholder)
from .template_store import DEFAULT_EXTENSIONS, TemplateCache, TemplateStore, resolve_template

DEFAULT_MAX_DEPTH = 10
DEFAULT_MAX_EXPANSIONS = 1000

@dataclass
class FlattenResult:
    text: str
    warnings: List[str] = field(default_factory=list)
    expansions: int = 0
    exhausted: bool = False

class _ExpansionRun:
    """Bookkeeping shared by every recursion level of one top-level flatten call."""

    def __init__(self, max_expansions: int):
        self.max_expansions = max_expansions
        self.expansions = 0
        self.exhausted = False
        self.warnings: List[str] = []
        self._reported: Set[Tuple[str, str]] = set()

    def warn(self, kind: str, name: str, message: str) -> None:
        if (kind, name) in self._reported:
            return
        self._reported.add((kind, name))
        self.warnings.append(message)
        logger.warning(message)

    def spend(self) -> bool:
        """Counts one substitution. False once the budget is used up."""
        if self.expansions >= self.max_expansions:
            self.exhausted = True
            self.warn("limit", "", f"Template expansion stopped after {self.expansions} substitutions.")
            return False
        self.expansions += 1
        return True

class TemplateFlattener:
    """
    Inlines `{{NAME}}` template references, recursively.

    Reserved placeholders (FILE_BLOCK, TEXT_BLOCK, TEMPLATE_BLOCK) are left for the
    block parser. `{{PROMPT_RESPONSE=NAME}}` is kept as a slot: NAME is only looked
    up to check that it exists, and the placeholder is rewritten to its canonical form.
    Any other `{{NAME=PARAM}}` is a missing reference. Cycles, missing templates
    and exhausted limits never raise; the placeholder is left verbatim and a
    warning is recorded.
    """

    def __init__(self,
                 store: TemplateStore,
                 cache: Optional[TemplateCache] = None,
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 max_expansions: int = DEFAULT_MAX_EXPANSIONS,
                 extensions: Sequence[str] = DEFAULT_EXTENSIONS):
        self.store = store
        self.cache = cache if cache is not None else TemplateCache()
        self.max_depth = max_depth
        self.max_expansions = max_expansions
        self.extensions = tuple(extensions)

    @classmethod
    def from_config(cls, store: TemplateStore, config, cache: Optional[TemplateCache] = None) -> "TemplateFlattener":
        return cls(store, cache=cache,
                   max_depth=config.max_flatten_depth,
                   max_expansions=config.max_flatten_expansions,
                   extensions=config.template_extensions)

    def clear_cache(self) -> None:
        self.cache.clear()

    async def lookup(self, name: str) -> Optional[str]:
        """Template content for `name`, consulting and filling the shared cache."""
        cached = self.cache.get(name)
        if cached is not None:
            return cached
        if self.cache.is_missing(name):
            return None
        try:
            content = await resolve_template(self.store, name, self.extensions)
        except Exception:
            logger.exception(f"Template lookup failed for '{name}'")
            content = None
        if content is None:
            self.cache.mark_missing(name)
        else:
            self.cache.put(name, content)
        return content

    async def flatten(self, text: str,
                      visited: Optional[AbstractSet[str]] = None,
                      max_depth: Optional[int] = None) -> FlattenResult:
        run = _ExpansionRun(self.max_expansions)
        depth = self.max_depth if max_depth is None else max_depth
        flattened, _ = await self._expand(text, frozenset(visited or ()), depth, run)
        if run.expansions:
            logger.debug(f"Flattened template with {run.expansions} substitution(s).")
        return FlattenResult(text=flattened, warnings=run.warnings,
                             expansions=run.expansions, exhausted=run.exhausted)

    async def flatten_text(self, text: str) -> str:
        return (await self.flatten(text)).text

    async def _expand(self, text: str, visited: frozenset, depth: int,
                      run: _ExpansionRun) -> Tuple[str, FrozenSet[str]]:
        """
        Returns the expanded text and the names it still references only because
        the depth cap stopped them. Callers must leave those names as they are.
        """
        if depth <= 0:
            run.warn("depth", "", "Maximum template nesting depth reached; remaining references left as-is.")
            return text, frozenset(p.name for p in iter_placeholders(text)
                                   if p.name not in RESERVED_NAMES and p.name != PROMPT_RESPONSE)

        # Names substituted at this level. Every occurrence is replaced at once, so
        # seeing one again means the substituted text reintroduced it.
        expanded_here: Set[str] = set()
        held: Set[str] = set()
        pos = 0
        while not run.exhausted:
            placeholder = search_placeholder(text, pos)
            if placeholder is None:
                break
            name = placeholder.name

            if name in RESERVED_NAMES or name in held:
                pos = placeholder.end
                continue

            if name == PROMPT_RESPONSE:
                ref = (placeholder.value or "").strip()
                if not ref:
                    pos = placeholder.end
                    continue
                if await self.lookup(ref) is None:
                    run.warn("missing", ref, f"Prompt response template not found: {ref}")
                canonical = format_placeholder(PROMPT_RESPONSE, ref)
                text = text[:placeholder.start] + canonical + text[placeholder.end:]
                pos = placeholder.start + len(canonical)
                continue

            if placeholder.value is not None:
                # Only reserved names take a parameter
                inner = placeholder.text[2:-2].strip()
                run.warn("missing", inner, f"Template not found: {inner}")
                pos = placeholder.end
                continue

            if name in visited or name in expanded_here:
                run.warn("cycle", name, f"Cyclic template reference left unexpanded: {name}")
                pos = placeholder.end
                continue

            content = await self.lookup(name)
            if content is None:
                run.warn("missing", name, f"Template not found: {name}")
                pos = placeholder.end
                continue

            if not run.spend():
                break
            nested, nested_held = await self._expand(content, visited | {name}, depth - 1, run)
            held.update(nested_held)
            text = replace_named(text, name, nested)
            expanded_here.add(name)
            pos = 0

        return text, frozenset(held)
