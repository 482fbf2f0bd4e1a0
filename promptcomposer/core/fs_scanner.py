# promptcomposer/core/fs_scanner.py
import asyncio
import fnmatch
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional, Sequence

from loguru import logger

from .models import DirectoryListing, NodeType, TreeNode

class FileAccess(ABC):
    """Directory listing and file reads consumed by the selection engine."""

    @abstractmethod
    async def list_directory(self, path: str) -> DirectoryListing:
        """Listing of `path`, already filtered by ignore rules."""

    @abstractmethod
    async def read_file(self, path: str) -> Optional[str]:
        """Text content of `path`, or None when it cannot be read."""

class IgnoreRule(NamedTuple):
    pattern: str
    dir_only: bool = False

def parse_ignore_lines(lines: Iterable[str], source: str = "<patterns>") -> List[IgnoreRule]:
    """
    Reads .gitignore-style lines. Blank lines and comments are skipped, a leading
    "/" is dropped and a trailing "/" restricts the rule to directories.
    """
    rules: List[IgnoreRule] = []
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("!"):
            logger.warning(f"Negated ignore pattern not supported, skipping '{line}' in {source}")
            continue
        dir_only = line.endswith("/")
        line = line.strip("/")
        if line:
            rules.append(IgnoreRule(line, dir_only))
    return rules

class _DirectoryScanner:
    """Synchronous recursive scan of one root directory."""

    def __init__(self, root_path: Path, rules: Sequence[IgnoreRule]):
        self.root_path = root_path
        self.rules = list(rules)
        logger.debug(f"Scanner initialized for {self.root_path} with {len(self.rules)} ignore rule(s)")

    def is_ignored(self, entry_path: Path, is_dir: bool) -> bool:
        """Patterns are matched against the name and the path relative to the root."""
        try:
            relative_path_str = entry_path.relative_to(self.root_path).as_posix()
        except ValueError:
            relative_path_str = None
        name = entry_path.name

        for rule in self.rules:
            if rule.dir_only and not is_dir:
                continue
            if fnmatch.fnmatch(name, rule.pattern):
                logger.trace(f"Ignoring '{name}' due to pattern '{rule.pattern}'")
                return True
            if relative_path_str and fnmatch.fnmatch(relative_path_str, rule.pattern):
                logger.trace(f"Ignoring '{relative_path_str}' due to pattern '{rule.pattern}'")
                return True
        return False

    def scan(self) -> List[TreeNode]:
        logger.info(f"Listing directory: {self.root_path}")
        return self._scan_children(self.root_path)

    def _scan_children(self, dir_path: Path) -> List[TreeNode]:
        try:
            entries = list(os.scandir(dir_path))
        except OSError as e:
            logger.warning(f"Could not scan directory contents {dir_path}: {e}")
            return []

        children: List[TreeNode] = []
        for entry in entries:
            try:
                # Checked before is_dir/is_file, which would follow the link
                if entry.is_symlink():
                    logger.trace(f"Ignoring symlink entry: {entry.name}")
                    continue
                entry_is_dir = entry.is_dir()
                entry_is_file = entry.is_file()
            except OSError as e:
                logger.warning(f"Could not inspect entry {entry.path}: {e}. Skipping.")
                continue

            entry_path = dir_path / entry.name
            if self.is_ignored(entry_path, entry_is_dir):
                continue
            if entry_is_dir:
                children.append(TreeNode(name=entry.name, path=str(entry_path), type=NodeType.DIRECTORY,
                                         children=self._scan_children(entry_path)))
            elif entry_is_file:
                children.append(TreeNode(name=entry.name, path=str(entry_path)))

        return sorted(children, key=lambda n: (not n.is_dir, n.name.lower()))

class LocalFileAccess(FileAccess):
    """Local filesystem implementation. Blocking work runs in a worker thread."""

    def __init__(self,
                 ignore_patterns: Sequence[str] = (),
                 ignore_files: Sequence[str] = (".gitignore", ".promptignore")):
        self.ignore_patterns = list(ignore_patterns)
        self.ignore_files = list(ignore_files)

    @classmethod
    def from_config(cls, config) -> "LocalFileAccess":
        return cls(ignore_patterns=config.ignore_patterns, ignore_files=config.ignore_files)

    def _rules_for(self, root: Path) -> List[IgnoreRule]:
        rules = parse_ignore_lines(self.ignore_patterns)
        for file_name in self.ignore_files:
            ignore_file = root / file_name
            if not ignore_file.is_file():
                continue
            try:
                lines = ignore_file.read_text(encoding="utf-8", errors="replace").splitlines()
            except OSError as e:
                logger.warning(f"Could not read ignore file {ignore_file}: {e}")
                continue
            rules.extend(parse_ignore_lines(lines, source=str(ignore_file)))
        return rules

    def list_directory_sync(self, path: str) -> DirectoryListing:
        root = Path(path).expanduser().resolve()
        if not root.is_dir():
            raise NotADirectoryError(f"Provided path is not a valid directory: {root}")
        children = _DirectoryScanner(root, self._rules_for(root)).scan()
        return DirectoryListing(root_path=str(root), root_name=root.name or str(root), children=children)

    async def list_directory(self, path: str) -> DirectoryListing:
        return await asyncio.to_thread(self.list_directory_sync, path)

    @staticmethod
    def read_file_sync(path: str) -> Optional[str]:
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            logger.warning(f"Could not read file {path}: {e}")
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"File {path} is not valid UTF-8, decoding as latin-1")
            return data.decode("latin-1")

    async def read_file(self, path: str) -> Optional[str]:
        return await asyncio.to_thread(self.read_file_sync, path)
