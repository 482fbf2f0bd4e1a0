# promptcomposer/core/prompt_flattener.py
import dataclasses
import re
from typing import Iterable, List, Optional, Sequence

from loguru import logger

from .models import (Block, FileEntry, FilesBlock, PromptResponseBlock, TemplateBlock,
                     TemplateVariable, TextBlock)
from .template_flattener import TemplateFlattener

BLOCK_SEPARATOR = "\n\n"
_LEADING_BLANK_LINES = re.compile(r"\A(?:[ \t]*\n)+")

def render_file_section(entry: FileEntry) -> str:
    return (
        "<file_contents>\n"
        f"File: {entry.path}\n"
        f"```{entry.language}\n"
        f"{entry.content.rstrip()}\n"
        "```\n"
        "</file_contents>"
    )

def substitute_variables(content: str, variables: Iterable[TemplateVariable]) -> str:
    """Replaces every `{{name}}` (whitespace inside the braces allowed) by the variable's default."""
    for variable in variables:
        if not variable.name:
            continue
        pattern = re.compile(r"\{\{\s*" + re.escape(variable.name) + r"\s*\}\}")
        content = pattern.sub(lambda _m, value=variable.default: value, content)
    return content

def render_files_block(block: FilesBlock, entries: Optional[Sequence[FileEntry]] = None) -> str:
    """The map (when wanted) followed by one section per file. `entries` overrides the block's own files."""
    parts: List[str] = []
    if block.include_project_map and block.project_ascii_map.strip():
        parts.append(block.project_ascii_map.strip())
    files = block.files if entries is None else entries
    parts.extend(render_file_section(entry) for entry in files)
    return "\n".join(parts)

def tidy_rendering(text: str) -> str:
    """Drops leading blank lines and trailing whitespace of one block's rendering."""
    return _LEADING_BLANK_LINES.sub("", text).rstrip()

def populate_files_block(block: FilesBlock, entries: Sequence[FileEntry], ascii_map: str = "") -> FilesBlock:
    """
    Copy of `block` holding `entries`. The map is filled in only when the block
    wants one and does not carry one already.
    """
    project_map = block.project_ascii_map
    if block.include_project_map and not project_map:
        project_map = ascii_map
    return dataclasses.replace(block, files=[dataclasses.replace(e) for e in entries],
                               project_ascii_map=project_map)

class PromptRenderer:
    """Renders an ordered block list into the final prompt string."""

    def __init__(self, flattener: Optional[TemplateFlattener] = None):
        self.flattener = flattener

    async def _resolve(self, text: str) -> str:
        if self.flattener is None or not text:
            return text
        return (await self.flattener.flatten(text)).text

    async def render_block(self, block: Block) -> str:
        if isinstance(block, TextBlock):
            return await self._resolve(block.content)
        if isinstance(block, TemplateBlock):
            return await self._resolve(substitute_variables(block.content, block.variables))
        if isinstance(block, FilesBlock):
            return render_files_block(block)
        if isinstance(block, PromptResponseBlock):
            return await self._resolve(block.content)

        kind = getattr(block, "kind", type(block).__name__)
        logger.warning(f"Unsupported block type in composition: {kind}")
        return f"[Unsupported block type: {kind}]"

    async def render(self, blocks: Sequence[Block]) -> str:
        """Blocks in order, one blank line between non-empty renderings."""
        rendered: List[str] = []
        for block in blocks:
            text = tidy_rendering(await self.render_block(block))
            if text:
                rendered.append(text)
        logger.debug(f"Rendered {len(rendered)} of {len(blocks)} block(s)")
        return BLOCK_SEPARATOR.join(rendered)
