# promptcomposer/core/composition.py
from typing import Iterator, List, Optional, Sequence

from loguru import logger

from .block_parser import (ParseResult, group_lead_id, group_raw_text, parse_blocks,
                           reparse_group, splice_group)
from .models import Block, FileEntry, FilesBlock
from .prompt_flattener import populate_files_block
from .template_flattener import TemplateFlattener

class Composition:
    """
    The ordered block list of one prompt. Order is render order.

    Unknown block ids raise KeyError and out-of-range moves raise IndexError.
    """

    def __init__(self, blocks: Optional[Sequence[Block]] = None):
        self._blocks: List[Block] = list(blocks or [])

    @property
    def blocks(self) -> List[Block]:
        return list(self._blocks)

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[Block]:
        return iter(list(self._blocks))

    def index_of(self, block_id: str) -> int:
        for idx, block in enumerate(self._blocks):
            if block.id == block_id:
                return idx
        raise KeyError(block_id)

    def get(self, block_id: str) -> Block:
        return self._blocks[self.index_of(block_id)]

    # --- Adding and removing ---

    def add_block(self, block: Block) -> None:
        self._blocks.append(block)

    def add_blocks(self, blocks: Sequence[Block]) -> None:
        self._blocks.extend(blocks)

    def insert_block(self, index: int, block: Block) -> None:
        self._blocks.insert(index, block)

    def remove_block(self, block_id: str) -> Block:
        return self._blocks.pop(self.index_of(block_id))

    def remove_group(self, group_id: str) -> List[Block]:
        removed = self.group_blocks(group_id)
        self._blocks = [b for b in self._blocks if b.group.group_id != group_id]
        logger.debug(f"Removed {len(removed)} block(s) of group {group_id}")
        return removed

    def update_block(self, block: Block) -> None:
        self._blocks[self.index_of(block.id)] = block

    def clear(self) -> None:
        self._blocks = []

    # --- Ordering ---

    def move_block(self, old_index: int, new_index: int) -> None:
        size = len(self._blocks)
        if not (0 <= old_index < size and 0 <= new_index < size):
            raise IndexError(f"Cannot move block from {old_index} to {new_index} in a composition of {size}")
        block = self._blocks.pop(old_index)
        self._blocks.insert(new_index, block)

    def _unit_range(self, index: int):
        """First and last index of the group containing `index` (the block alone when ungrouped)."""
        group_id = self._blocks[index].group.group_id
        if group_id is None:
            return index, index
        indices = [i for i, b in enumerate(self._blocks) if b.group.group_id == group_id]
        return min(indices), max(indices)

    def move_group(self, block_id: str, direction: str) -> bool:
        """
        Moves the group of `block_id` (or the block alone) one step up or down,
        past the whole neighbouring group. False when already at the edge.
        """
        if direction not in ("up", "down"):
            raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")
        start, end = self._unit_range(self.index_of(block_id))
        chunk = self._blocks[start:end + 1]
        rest = self._blocks[:start] + self._blocks[end + 1:]
        if direction == "up":
            if start == 0:
                return False
            neighbour_start, _ = self._unit_range(start - 1)
            self._blocks = rest[:neighbour_start] + chunk + rest[neighbour_start:]
        else:
            if end == len(self._blocks) - 1:
                return False
            _, neighbour_end = self._unit_range(end + 1)
            insert_at = neighbour_end - len(chunk) + 1
            self._blocks = rest[:insert_at] + chunk + rest[insert_at:]
        return True

    # --- Groups ---

    def group_blocks(self, group_id: str) -> List[Block]:
        return [b for b in self._blocks if b.group.group_id == group_id]

    def group_ids(self) -> List[str]:
        seen: List[str] = []
        for block in self._blocks:
            gid = block.group.group_id
            if gid is not None and gid not in seen:
                seen.append(gid)
        return seen

    def replace_group(self, group_id: str, blocks: Sequence[Block]) -> None:
        self._blocks = splice_group(self._blocks, group_id, blocks)

    def raw_text(self, group_id: str) -> str:
        return group_raw_text(self._blocks, group_id)

    async def add_template(self, text: str, flattener: Optional[TemplateFlattener] = None) -> ParseResult:
        """Flattens (when a flattener is given) and parses `text`, appending the new group."""
        warnings: List[str] = []
        if flattener is not None:
            flattened = await flattener.flatten(text)
            text = flattened.text
            warnings.extend(flattened.warnings)
        result = parse_blocks(text)
        self.add_blocks(result.blocks)
        result.warnings = warnings + result.warnings
        return result

    async def apply_raw_edit(self, group_id: str, new_text: str,
                             flattener: Optional[TemplateFlattener] = None) -> List[str]:
        """Replaces a group by the parse of its edited raw text. Unchanged text is a no-op."""
        if flattener is None:
            self._blocks, warnings = reparse_group(self._blocks, group_id, new_text)
            return warnings
        if group_raw_text(self._blocks, group_id) == new_text:
            return []
        flattened = await flattener.flatten(new_text)
        result = parse_blocks(flattened.text, group_id=group_id,
                              lead_block_id=group_lead_id(self._blocks, group_id))
        self._blocks = splice_group(self._blocks, group_id, result.blocks)
        return flattened.warnings + result.warnings

    # --- Files ---

    def set_files_block(self, entries: Sequence[FileEntry], ascii_map: str = "",
                        include_project_map: bool = True) -> List[FilesBlock]:
        """Fills every FilesBlock with `entries`; appends a new one when there is none."""
        updated: List[FilesBlock] = []
        for idx, block in enumerate(self._blocks):
            if isinstance(block, FilesBlock):
                self._blocks[idx] = populate_files_block(block, entries, ascii_map)
                updated.append(self._blocks[idx])
        if not updated:
            block = populate_files_block(FilesBlock(include_project_map=include_project_map), entries, ascii_map)
            self._blocks.append(block)
            updated.append(block)
        logger.debug(f"Populated {len(updated)} file block(s) with {len(entries)} file(s)")
        return updated

    def validate(self) -> List[str]:
        """Problems with ids and group flags; an empty list means the composition is consistent."""
        problems: List[str] = []
        seen_ids = set()
        for block in self._blocks:
            if block.id in seen_ids:
                problems.append(f"Duplicate block id: {block.id}")
            seen_ids.add(block.id)
        for group_id in self.group_ids():
            leads = [b for b in self.group_blocks(group_id) if b.group.is_lead]
            if len(leads) > 1:
                problems.append(f"Group {group_id} has {len(leads)} lead blocks")
            for lead in leads:
                if lead.group.locked:
                    problems.append(f"Lead block {lead.id} of group {group_id} is locked")
        for block in self._blocks:
            if block.group.group_id is None and block.group.is_lead:
                problems.append(f"Block {block.id} is a lead without a group")
        return problems
