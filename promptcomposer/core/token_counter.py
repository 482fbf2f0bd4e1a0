# promptcomposer/core/token_counter.py
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from .models import Block, FileEntry, FilesBlock, PromptResponseBlock, TemplateBlock, TextBlock
from .prompt_flattener import render_files_block

# --- Tiktoken Initialization ---
try:
    import tiktoken
    # Fail early if the default encoding data cannot be loaded
    _ = tiktoken.get_encoding("cl100k_base")
    TIKTOKEN_AVAILABLE = True
    logger.info("tiktoken library loaded successfully.")
except ImportError:
    logger.warning("tiktoken library not found. Token counting will be estimated.")
    tiktoken = None # type: ignore
    TIKTOKEN_AVAILABLE = False
except Exception as e:
    logger.error(f"Failed to initialize tiktoken, token counting will be estimated: {e}")
    tiktoken = None # type: ignore
    TIKTOKEN_AVAILABLE = False

DEFAULT_MODEL = "gpt-4o"
DEFAULT_ENCODING = "cl100k_base"
FALLBACK_ENCODING = DEFAULT_ENCODING
_O200K_PREFIXES = ("gpt-4o", "gpt-4.1", "o1", "o3", "o4")

def encoding_for_model(model: str) -> str:
    """tiktoken encoding name for a model id. Unknown models get the default encoding."""
    if (model or "").lower().startswith(_O200K_PREFIXES):
        return "o200k_base"
    return DEFAULT_ENCODING

@lru_cache(maxsize=4) # Cache a few loaded encoder objects
def _get_cached_encoder(encoding_name: str) -> Optional[Any]:
    """Internal helper to load and cache encoder objects."""
    if not TIKTOKEN_AVAILABLE:
        logger.trace(f"Tiktoken unavailable, cannot get encoder '{encoding_name}'.")
        return None
    try:
        logger.debug(f"Attempting to load tiktoken encoder: {encoding_name}")
        return tiktoken.get_encoding(encoding_name) # type: ignore
    except Exception as e:
        if encoding_name == FALLBACK_ENCODING:
            logger.error(f"Fallback encoder '{FALLBACK_ENCODING}' failed. No encoder available: {e}")
            return None
        logger.warning(f"Failed to get tiktoken encoder '{encoding_name}': {e}. Trying fallback '{FALLBACK_ENCODING}'.")
        return _get_cached_encoder(FALLBACK_ENCODING)

# --- Estimators ---

class TokenEstimator(ABC):
    """Maps text to an approximate token count for a model. Empty text is always 0."""

    @abstractmethod
    def estimate(self, text: str, model: str = DEFAULT_MODEL) -> int:
        ...

@dataclass(frozen=True)
class _Profile:
    prose: float
    code: float
    markup: float
    factor: float = 1.0
    script_code: Optional[float] = None

_GPT4O_PROFILE = _Profile(prose=3.8, code=4.5, markup=3.55, factor=1.17, script_code=4.7)
_GPT4_PROFILE = _Profile(prose=3.9, code=4.5, markup=3.9)
_DEFAULT_PROFILE = _Profile(prose=3.7, code=4.2, markup=3.7)

_FENCE_RE = re.compile(r"```")
_MARKUP_RE = re.compile(r"<file_contents>|<file_map>")
_SCRIPT_RE = re.compile(r"typescript|javascript")

def _profile_for(model: str) -> _Profile:
    model = (model or "").lower()
    if model.startswith("gpt-4o"):
        return _GPT4O_PROFILE
    if model.startswith("gpt-4"):
        return _GPT4_PROFILE
    return _DEFAULT_PROFILE

class HeuristicEstimator(TokenEstimator):
    """
    Character-count estimate with a divisor per content shape. Each character is
    classed by what precedes it: inside a ``` fence it is code, after file markup
    it is markup, otherwise prose. Appending text never changes the class of
    earlier characters, so the estimate grows with the text.
    """

    @staticmethod
    def _events(text: str) -> List[Tuple[int, str]]:
        events = [(m.end(), "fence") for m in _FENCE_RE.finditer(text)]
        markup = _MARKUP_RE.search(text)
        if markup:
            events.append((markup.end(), "markup"))
        script = _SCRIPT_RE.search(text)
        if script:
            events.append((script.end(), "script"))
        return sorted(events)

    def estimate(self, text: str, model: str = DEFAULT_MODEL) -> int:
        if not text:
            return 0
        profile = _profile_for(model)
        in_fence = markup_seen = script_seen = False

        def divisor() -> float:
            if in_fence:
                if script_seen and profile.script_code is not None:
                    return profile.script_code
                return profile.code
            return profile.markup if markup_seen else profile.prose

        weighted = 0.0
        start = 0
        for position, event in self._events(text):
            weighted += (position - start) / divisor()
            start = position
            if event == "fence":
                in_fence = not in_fence
            elif event == "markup":
                markup_seen = True
            else:
                script_seen = True
        weighted += (len(text) - start) / divisor()
        return math.ceil(weighted * profile.factor)

class TiktokenEstimator(TokenEstimator):
    """Exact counts through tiktoken, the heuristic when no encoder is available."""

    def __init__(self, fallback: Optional[TokenEstimator] = None):
        self.fallback = fallback or HeuristicEstimator()

    def estimate(self, text: str, model: str = DEFAULT_MODEL) -> int:
        if not text:
            return 0
        encoder = _get_cached_encoder(encoding_for_model(model)) if TIKTOKEN_AVAILABLE else None
        if encoder is None:
            return self.fallback.estimate(text, model)
        try:
            return len(encoder.encode(text, disallowed_special=()))
        except Exception as e:
            logger.error(f"Error encoding text for token count with model '{model}': {e}")
            return self.fallback.estimate(text, model)

_DEFAULT_ESTIMATOR = TiktokenEstimator()

def estimate_tokens(text: str, model: str = DEFAULT_MODEL, estimator: Optional[TokenEstimator] = None) -> int:
    return (estimator or _DEFAULT_ESTIMATOR).estimate(text, model)

def count_tokens(text: str, encoding_name: str = DEFAULT_ENCODING) -> int:
    """
    Counts tokens with a named tiktoken encoding.
    Falls back to the heuristic (default profile) if tiktoken fails or is unavailable.
    """
    if not text:
        return 0
    encoder = _get_cached_encoder(encoding_name) if TIKTOKEN_AVAILABLE else None
    if encoder:
        try:
            return len(encoder.encode(text, disallowed_special=()))
        except Exception as e:
            logger.error(f"Error encoding text for token count with '{encoding_name}': {e}")
    return HeuristicEstimator().estimate(text, model="")

# --- Per-block usage ---

@dataclass
class TokenUsage:
    total: int = 0
    by_block: Dict[str, int] = field(default_factory=dict)

    def over_budget(self, max_tokens: int) -> bool:
        return self.total > max_tokens

def block_text(block: Block, selected_entries: Optional[Sequence[FileEntry]] = None) -> str:
    """The text a block contributes to the prompt, before nested template resolution."""
    if isinstance(block, (TextBlock, TemplateBlock, PromptResponseBlock)):
        return block.content
    if isinstance(block, FilesBlock):
        return render_files_block(block, selected_entries)
    return ""

def token_usage(blocks: Sequence[Block],
                model: str = DEFAULT_MODEL,
                selected_entries: Optional[Sequence[FileEntry]] = None,
                estimator: Optional[TokenEstimator] = None) -> TokenUsage:
    usage = TokenUsage()
    for block in blocks:
        if not isinstance(block, (TextBlock, TemplateBlock, FilesBlock, PromptResponseBlock)):
            logger.warning(f"Not counting tokens for unsupported block type: {getattr(block, 'kind', type(block).__name__)}")
        count = estimate_tokens(block_text(block, selected_entries), model, estimator)
        block_id = getattr(block, "id", str(len(usage.by_block)))
        usage.by_block[block_id] = count
        usage.total += count
    logger.debug(f"Token usage for {len(blocks)} block(s) with model '{model}': {usage.total}")
    return usage
