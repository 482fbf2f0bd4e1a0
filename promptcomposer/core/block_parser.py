# promptcomposer/core/block_parser.py
"""
Splits flattened template text into an ordered list of blocks.

Text between placeholders becomes template segments; reserved placeholders
become their typed blocks; anything else is kept as an inert marker block.
All blocks of one parse share a group id. The first block produced is the
group's editable lead, every other block is locked.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from .models import (Block, FilesBlock, GroupMembership, PromptResponseBlock, TemplateBlock,
                     TextBlock, new_block_id)
from .placeholders import (FILE_BLOCK, PROMPT_RESPONSE, TEMPLATE_BLOCK, TEXT_BLOCK,
                           Placeholder, format_placeholder, iter_placeholders)

SEGMENT_LABEL = "Template Segment"
TEXT_LABEL = "User Text Block"
FILES_LABEL = "File Block"
RESPONSE_LABEL = "Prompt Response"
NESTED_LABEL = "Nested Template Block"
UNKNOWN_LABEL = "Unknown Placeholder"
EMPTY_LABEL = "Empty Template"

@dataclass
class ParseResult:
    blocks: List[Block]
    warnings: List[str] = field(default_factory=list)
    group_id: str = ""

class _GroupBuilder:
    def __init__(self, group_id: str, lead_block_id: Optional[str]):
        self.group_id = group_id
        self.lead_block_id = lead_block_id
        self.blocks: List[Block] = []

    def add(self, block: Block) -> None:
        is_lead = not self.blocks
        block.group = GroupMembership(group_id=self.group_id, is_lead=is_lead, locked=not is_lead)
        if is_lead and self.lead_block_id:
            block.id = self.lead_block_id
        self.blocks.append(block)

def _placeholder_block(placeholder: Placeholder, warnings: List[str]) -> Block:
    name, value = placeholder.name, placeholder.value
    if name == TEXT_BLOCK:
        return TextBlock(content=value or "", label=TEXT_LABEL)
    if name == FILE_BLOCK:
        return FilesBlock(label=FILES_LABEL)
    if name == TEMPLATE_BLOCK:
        return TemplateBlock(content=value or "", label=NESTED_LABEL)
    if name == PROMPT_RESPONSE and value and value.strip():
        return PromptResponseBlock(source_file=value.strip(), label=RESPONSE_LABEL)

    message = f"Unknown placeholder: {placeholder.text}"
    logger.warning(message)
    warnings.append(message)
    return TemplateBlock(content=placeholder.text, label=UNKNOWN_LABEL)

def parse_blocks(text: str, group_id: Optional[str] = None, lead_block_id: Optional[str] = None) -> ParseResult:
    """Single left-to-right pass. Never raises; problems are returned as warnings."""
    group_id = group_id or new_block_id()
    builder = _GroupBuilder(group_id, lead_block_id)
    warnings: List[str] = []

    cursor = 0
    for placeholder in iter_placeholders(text):
        segment = text[cursor:placeholder.start]
        if segment:
            builder.add(TemplateBlock(content=segment, label=SEGMENT_LABEL))
        builder.add(_placeholder_block(placeholder, warnings))
        cursor = placeholder.end

    trailing = text[cursor:]
    if trailing:
        builder.add(TemplateBlock(content=trailing, label=SEGMENT_LABEL))

    if not builder.blocks:
        builder.add(TemplateBlock(content="", label=EMPTY_LABEL))

    logger.debug(f"Parsed {len(builder.blocks)} block(s) into group {group_id} ({len(warnings)} warning(s)).")
    return ParseResult(blocks=builder.blocks, warnings=warnings, group_id=group_id)

def _raw_text(block: Block) -> str:
    if isinstance(block, TextBlock):
        return format_placeholder(TEXT_BLOCK, block.content)
    if isinstance(block, FilesBlock):
        return format_placeholder(FILE_BLOCK)
    if isinstance(block, PromptResponseBlock):
        return format_placeholder(PROMPT_RESPONSE, block.source_file)
    if isinstance(block, TemplateBlock) and block.label == NESTED_LABEL:
        return format_placeholder(TEMPLATE_BLOCK, block.content)
    return block.content

def group_raw_text(blocks: Sequence[Block], group_id: str) -> str:
    """Rebuilds the template text a group was parsed from."""
    return "".join(_raw_text(b) for b in blocks if b.group.group_id == group_id)

def group_lead_id(blocks: Sequence[Block], group_id: str) -> Optional[str]:
    for block in blocks:
        if block.group.group_id == group_id and block.group.is_lead:
            return block.id
    return None

def splice_group(blocks: Sequence[Block], group_id: str, new_blocks: Sequence[Block]) -> List[Block]:
    """
    Replaces every member of a group by `new_blocks`, inserted where the group's
    first member was. Appends when the group is not present.
    """
    result: List[Block] = []
    inserted = False
    for block in blocks:
        if block.group.group_id == group_id:
            if not inserted:
                result.extend(new_blocks)
                inserted = True
            continue
        result.append(block)
    if not inserted:
        result.extend(new_blocks)
    return result

def reparse_group(blocks: Sequence[Block], group_id: str, new_text: str) -> Tuple[List[Block], List[str]]:
    """Parses edited raw text back into the group, keeping its group id and lead id."""
    if group_raw_text(blocks, group_id) == new_text:
        logger.debug(f"Group {group_id} unchanged; skipping re-parse.")
        return list(blocks), []
    result = parse_blocks(new_text, group_id=group_id, lead_block_id=group_lead_id(blocks, group_id))
    return splice_group(blocks, group_id, result.blocks), result.warnings
