# promptcomposer/core/selection.py
"""
Tri-state file selection over a forest of listed project folders.

The module-level functions are pure: they take the forest and a state map and
return a new map. `SelectionEngine` owns one project session's forest, states,
expansion flags and the lazily loaded contents of selected files.
"""
import asyncio
from pathlib import PurePath
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set

from loguru import logger

from .ascii_map import render_ascii_map
from .fs_scanner import FileAccess
from .models import DirectoryListing, FileEntry, NodeState, TreeNode

StateMap = Dict[str, NodeState]

_LANGUAGES = {
    "js": "javascript", "jsx": "javascript", "mjs": "javascript", "cjs": "javascript",
    "ts": "typescript", "tsx": "typescript",
    "py": "python", "md": "markdown", "json": "json", "css": "css",
    "html": "html", "htm": "html", "yml": "yaml", "yaml": "yaml",
    "sh": "bash", "rs": "rust", "rb": "ruby", "txt": "text",
}

def language_for_path(path: str) -> str:
    """Fenced-code language tag for a file path."""
    suffix = PurePath(path).suffix.lower().lstrip(".")
    if not suffix:
        return "text"
    return _LANGUAGES.get(suffix, suffix)

# --- Pure state functions ---

def iter_nodes(roots: Iterable[TreeNode]) -> Iterator[TreeNode]:
    """Pre-order, forest order."""
    stack = list(reversed(list(roots)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))

def index_nodes(roots: Iterable[TreeNode]) -> Dict[str, TreeNode]:
    return {node.path: node for node in iter_nodes(roots)}

def set_subtree_state(node: TreeNode, state: NodeState, states: StateMap) -> StateMap:
    """Overwrites the state of `node` and every descendant."""
    updated = dict(states)
    for descendant in iter_nodes([node]):
        updated[descendant.path] = state
    return updated

def recalculate_states(roots: Iterable[TreeNode], states: StateMap) -> StateMap:
    """
    Bottom-up recomputation of every directory with children. Files and
    childless directories keep whatever state they have.
    """
    updated = dict(states)
    for root in roots:
        stack = [(root, False)]
        while stack:
            node, children_done = stack.pop()
            if not node.is_dir or not node.children:
                continue
            if not children_done:
                stack.append((node, True))
                stack.extend((child, False) for child in node.children)
                continue
            child_states = [updated.get(child.path, NodeState.NONE) for child in node.children]
            if all(s == NodeState.ALL for s in child_states):
                updated[node.path] = NodeState.ALL
            elif all(s == NodeState.NONE for s in child_states):
                updated[node.path] = NodeState.NONE
            else:
                updated[node.path] = NodeState.PARTIAL
    return updated

def toggle_state(roots: Sequence[TreeNode], states: StateMap, path: str) -> StateMap:
    """`all` becomes `none`, anything else becomes `all`, for the whole subtree."""
    node = index_nodes(roots).get(path)
    if node is None:
        logger.warning(f"Cannot toggle unknown path: {path}")
        return dict(states)
    current = states.get(path, NodeState.NONE)
    new_state = NodeState.NONE if current == NodeState.ALL else NodeState.ALL
    return recalculate_states(roots, set_subtree_state(node, new_state, states))

def selected_file_paths(roots: Iterable[TreeNode], states: StateMap) -> List[str]:
    return [node.path for node in iter_nodes(roots)
            if not node.is_dir and states.get(node.path) == NodeState.ALL]

def collapse_subtree(node: TreeNode, expanded: Dict[str, bool]) -> Dict[str, bool]:
    updated = dict(expanded)
    for descendant in iter_nodes([node]):
        if descendant.is_dir:
            updated[descendant.path] = False
    return updated

def inherit_selection(old_states: StateMap, roots: Sequence[TreeNode]) -> StateMap:
    """New nodes (no state yet) under a parent that was fully selected become selected too."""
    updated = dict(old_states)
    stack = [(root, False) for root in roots]
    while stack:
        node, parent_all = stack.pop()
        if node.path not in updated and parent_all:
            updated[node.path] = NodeState.ALL
        node_all = updated.get(node.path) == NodeState.ALL
        stack.extend((child, node_all) for child in node.children)
    return updated

# --- Session ---

FoldersChangedCallback = Callable[[List[str]], None]

class SelectionEngine:
    """
    One project session's selection state.

    `toggle` is synchronous: it updates states at once and schedules content
    fetches on the running loop (or defers them until `wait_until_loaded`).
    `refresh` is exclusive against other refreshes and folder changes.
    """

    def __init__(self, file_access: FileAccess, on_folders_changed: Optional[FoldersChangedCallback] = None):
        self.file_access = file_access
        self.on_folders_changed = on_folders_changed
        self._roots: Dict[str, TreeNode] = {}
        self._index: Dict[str, TreeNode] = {}
        self._states: StateMap = {}
        self._expanded: Dict[str, bool] = {}
        self._contents: Dict[str, Optional[str]] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._deferred: Set[str] = set()
        self._lock = asyncio.Lock()

    # --- Read-only views ---

    @property
    def roots(self) -> List[TreeNode]:
        return list(self._roots.values())

    @property
    def folders(self) -> List[str]:
        return list(self._roots.keys())

    @property
    def states(self) -> StateMap:
        return dict(self._states)

    @property
    def expanded(self) -> Dict[str, bool]:
        return dict(self._expanded)

    def node(self, path: str) -> Optional[TreeNode]:
        return self._index.get(path)

    def state_of(self, path: str) -> NodeState:
        return self._states.get(path, NodeState.NONE)

    def is_expanded(self, path: str) -> bool:
        return self._expanded.get(path, False)

    def selected_paths(self) -> List[str]:
        return selected_file_paths(self.roots, self._states)

    def content_of(self, path: str) -> Optional[str]:
        return self._contents.get(path)

    def is_loaded(self, path: str) -> bool:
        return path in self._contents

    def selected_entries(self) -> List[FileEntry]:
        """Loaded selected files in forest order. Unreadable files come with empty content."""
        entries = []
        for path in self.selected_paths():
            if path not in self._contents:
                continue
            entries.append(FileEntry(path=path, content=self._contents[path] or "",
                                     language=language_for_path(path)))
        return entries

    def ascii_map(self) -> str:
        listings = [DirectoryListing(root_path=root.path, root_name=root.name, children=root.children)
                    for root in self.roots]
        return render_ascii_map(listings)

    # --- Folder tracking ---

    def _root_key(self, path: str) -> Optional[str]:
        if path in self._roots:
            return path
        for key in self._roots:
            if PurePath(key) == PurePath(path):
                return key
        return None

    def _install_root(self, listing: DirectoryListing) -> TreeNode:
        root = listing.as_root_node()
        self._roots[listing.root_path] = root
        self._index = index_nodes(self.roots)
        return root

    def _notify_folders_changed(self) -> None:
        if self.on_folders_changed is not None:
            self.on_folders_changed(self.folders)

    async def add_folder(self, path: str, select_all: bool = False) -> TreeNode:
        """Lists `path` and starts tracking it. Already tracked roots are returned as-is."""
        async with self._lock:
            key = self._root_key(path)
            if key is not None:
                logger.debug(f"Folder already tracked: {key}")
                return self._roots[key]
            listing = await self.file_access.list_directory(path)
            key = self._root_key(listing.root_path)
            if key is not None:
                return self._roots[key]
            root = self._install_root(listing)
            self._states = recalculate_states(self.roots, self._states)
            self._expanded.setdefault(root.path, True)
            logger.info(f"Tracking folder {root.path} ({len(self._index)} node(s) total)")
        if select_all:
            self.toggle(root.path)
        self._notify_folders_changed()
        return root

    async def remove_folder(self, path: str) -> bool:
        async with self._lock:
            key = self._root_key(path)
            if key is None:
                logger.warning(f"Cannot remove untracked folder: {path}")
                return False
            root = self._roots.pop(key)
            for node in iter_nodes([root]):
                self._states.pop(node.path, None)
                self._expanded.pop(node.path, None)
                self._evict(node.path)
            self._index = index_nodes(self.roots)
            logger.info(f"Stopped tracking folder {key}")
        self._notify_folders_changed()
        return True

    async def refresh(self, folder_paths: Optional[Sequence[str]] = None) -> None:
        """Re-lists folders and reconciles states and loaded contents against the new trees."""
        async with self._lock:
            targets = self.folders if folder_paths is None else list(folder_paths)
            for path in targets:
                key = self._root_key(path)
                if key is None:
                    logger.warning(f"Cannot refresh untracked folder: {path}")
                    continue
                try:
                    listing = await self.file_access.list_directory(key)
                except OSError as e:
                    logger.warning(f"Could not refresh {key}, keeping previous listing: {e}")
                    continue
                self._roots[key] = listing.as_root_node()
            self._index = index_nodes(self.roots)
            self._states = recalculate_states(self.roots, inherit_selection(self._states, self.roots))
            self._sync_selection()
            logger.info(f"Refreshed {len(targets)} folder(s)")

    # --- Selection ---

    def toggle(self, path: str) -> NodeState:
        self._states = toggle_state(self.roots, self._states, path)
        self._sync_selection()
        return self.state_of(path)

    def _sync_selection(self) -> None:
        selected = self.selected_paths()
        selected_set = set(selected)
        for path in list(self._contents) + list(self._pending) + list(self._deferred):
            if path not in selected_set:
                self._evict(path)
        for path in selected:
            if path not in self._contents and path not in self._pending:
                self._schedule_fetch(path)

    def _evict(self, path: str) -> None:
        self._contents.pop(path, None)
        self._deferred.discard(path)
        task = self._pending.pop(path, None)
        if task is not None:
            task.cancel()

    def _schedule_fetch(self, path: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred.add(path)
            return
        self._deferred.discard(path)
        self._pending[path] = loop.create_task(self._fetch(path))

    async def _fetch(self, path: str) -> None:
        try:
            content = await self.file_access.read_file(path)
        except Exception:
            logger.exception(f"Reading selected file failed: {path}")
            content = None
        if self._pending.get(path) is not asyncio.current_task():
            return
        del self._pending[path]
        if content is None:
            logger.warning(f"Content unavailable for selected file: {path}")
        self._contents[path] = content

    async def wait_until_loaded(self) -> None:
        for path in list(self._deferred):
            self._schedule_fetch(path)
        while self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)

    # --- Expansion ---

    def toggle_expansion(self, path: str) -> bool:
        self._expanded[path] = not self._expanded.get(path, False)
        return self._expanded[path]

    def expand(self, path: str) -> None:
        self._expanded[path] = True

    def collapse(self, path: str) -> None:
        node = self._index.get(path)
        if node is None:
            self._expanded[path] = False
            return
        self._expanded = collapse_subtree(node, self._expanded)
