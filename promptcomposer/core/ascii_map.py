# promptcomposer/core/ascii_map.py
from typing import Iterable, List, Sequence

from loguru import logger

from .models import DirectoryListing, TreeNode

MAP_OPEN = "<file_map>"
MAP_CLOSE = "</file_map>"
DIR_LABEL_PREFIX = "[D] "

def _sort_key(node: TreeNode):
    # Directories first; then case-insensitive, lowercase before uppercase on ties.
    return (not node.is_dir, node.name.casefold(), node.name.swapcase())

def sorted_children(children: Iterable[TreeNode]) -> List[TreeNode]:
    return sorted(children, key=_sort_key)

def _node_lines(node: TreeNode, prefix: str, is_last: bool) -> List[str]:
    marker = "└── " if is_last else "├── "
    label = f"{DIR_LABEL_PREFIX}{node.name}" if node.is_dir else node.name
    lines = [f"{prefix}{marker}{label}"]
    if node.is_dir and node.children:
        child_prefix = prefix + ("    " if is_last else "│   ")
        children = sorted_children(node.children)
        for idx, child in enumerate(children):
            lines.extend(_node_lines(child, child_prefix, idx == len(children) - 1))
    return lines

def render_listing(listing: DirectoryListing) -> str:
    """One root as a `<file_map>` block, the first line inside being the absolute root path."""
    lines = [MAP_OPEN, listing.root_path]
    children = sorted_children(listing.children)
    for idx, child in enumerate(children):
        lines.extend(_node_lines(child, "", idx == len(children) - 1))
    lines.append(MAP_CLOSE)
    return "\n".join(lines)

def render_ascii_map(listings: Sequence[DirectoryListing]) -> str:
    """All roots, separated by a blank line. Empty string when there are none."""
    if not listings:
        return ""
    logger.debug(f"Rendering directory map for {len(listings)} root(s)")
    return "\n\n".join(render_listing(listing) for listing in listings)

async def generate_ascii_map(folders: Sequence[str], file_access) -> str:
    """Lists each folder through `file_access` and renders the combined map. Unlistable folders are skipped."""
    listings: List[DirectoryListing] = []
    for folder in folders:
        try:
            listings.append(await file_access.list_directory(folder))
        except OSError as e:
            logger.warning(f"Skipping folder in directory map {folder}: {e}")
    return render_ascii_map(listings)
