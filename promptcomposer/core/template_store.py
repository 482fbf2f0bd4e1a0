# promptcomposer/core/template_store.py
import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from loguru import logger

from .errors import TemplateStoreError
from ..config.paths import get_global_template_dir

DEFAULT_EXTENSIONS: Tuple[str, ...] = (".txt", ".md")

class TemplateStore(ABC):
    """Read access to named templates in a project location and a global location."""

    @abstractmethod
    async def read_project_template(self, name: str) -> Optional[str]:
        """Content of a project-local template, or None when not found."""

    @abstractmethod
    async def read_global_template(self, name: str) -> Optional[str]:
        """Content of a global template, or None when not found."""

async def resolve_template(store: TemplateStore, name: str,
                           extensions: Sequence[str] = DEFAULT_EXTENSIONS) -> Optional[str]:
    """
    Looks a template up in priority order: the bare name (project, then global),
    then, for names without an extension, each extension in turn (project, then global).
    """
    candidates = [name]
    if "." not in name:
        candidates.extend(f"{name}{ext}" for ext in extensions)

    for candidate in candidates:
        content = await store.read_project_template(candidate)
        if content is not None:
            logger.debug(f"Found project template: {candidate}")
            return content
        content = await store.read_global_template(candidate)
        if content is not None:
            logger.debug(f"Found global template: {candidate}")
            return content
    return None

class TemplateCache:
    """
    Lookup cache shared by every flatten call of a session.

    Holds resolved template contents and the set of names known to be missing.
    Must be cleared whenever the set of tracked project folders changes.
    """

    def __init__(self):
        self._templates: Dict[str, str] = {}
        self._missing: Set[str] = set()

    def get(self, name: str) -> Optional[str]:
        return self._templates.get(name)

    def put(self, name: str, content: str) -> None:
        self._templates[name] = content
        self._missing.discard(name)

    def mark_missing(self, name: str) -> None:
        self._missing.add(name)

    def is_missing(self, name: str) -> bool:
        return name in self._missing

    def clear(self) -> None:
        logger.info(f"Clearing template cache ({len(self._templates)} cached, {len(self._missing)} missing).")
        self._templates.clear()
        self._missing.clear()

    def __len__(self) -> int:
        return len(self._templates)

PathLike = Union[str, Path]

class LocalTemplateStore(TemplateStore):
    """
    Reads templates from `<project>/.prompt-composer/` folders and from the
    global `~/.prompt-composer/` folder. Each configured sub-directory is searched
    in order ("" meaning the template folder itself).
    """
    MAX_NAME_LENGTH = 255

    def __init__(self,
                 project_folders: Sequence[PathLike] = (),
                 global_dir: Optional[PathLike] = None,
                 dir_name: str = ".prompt-composer",
                 subdirectories: Sequence[str] = ("template", "")):
        self.dir_name = dir_name
        self.subdirectories = list(subdirectories)
        self.global_dir = Path(global_dir) if global_dir is not None else get_global_template_dir(dir_name)
        if self.global_dir.exists() and not self.global_dir.is_dir():
            raise TemplateStoreError(f"Global template location is not a directory: {self.global_dir}")
        self._project_folders: List[Path] = []
        self.set_project_folders(project_folders)

    @classmethod
    def from_config(cls, config, project_folders: Optional[Sequence[PathLike]] = None) -> "LocalTemplateStore":
        folders = project_folders if project_folders is not None else config.project_folders
        return cls(project_folders=folders,
                   dir_name=config.template_dir_name,
                   subdirectories=config.template_subdirectories)

    @property
    def project_folders(self) -> List[Path]:
        return list(self._project_folders)

    def set_project_folders(self, folders: Sequence[PathLike]) -> None:
        self._project_folders = [Path(f).expanduser().resolve() for f in folders]
        logger.debug(f"Template store tracking {len(self._project_folders)} project folder(s).")

    def _is_safe_name(self, name: str) -> bool:
        if not name or len(name) > self.MAX_NAME_LENGTH:
            logger.warning(f"Rejecting template name of length {len(name)}")
            return False
        if "/" in name or "\\" in name or name in (".", "..") or Path(name).is_absolute():
            logger.warning(f"Rejecting template name outside the template folder: {name!r}")
            return False
        return True

    def _folder_candidates(self, template_root: Path, name: str) -> List[Path]:
        return [template_root / sub / name if sub else template_root / name for sub in self.subdirectories]

    def candidate_paths(self, name: str) -> List[Path]:
        """Every path a lookup of `name` would try, project folders first."""
        paths: List[Path] = []
        for folder in self._project_folders:
            paths.extend(self._folder_candidates(folder / self.dir_name, name))
        paths.extend(self._folder_candidates(self.global_dir, name))
        return paths

    @staticmethod
    def _read_first(paths: Sequence[Path]) -> Optional[str]:
        for path in paths:
            if not path.is_file():
                continue
            try:
                return path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read template file {path}: {e}")
        return None

    async def read_project_template(self, name: str) -> Optional[str]:
        if not self._is_safe_name(name):
            return None
        paths: List[Path] = []
        for folder in self._project_folders:
            paths.extend(self._folder_candidates(folder / self.dir_name, name))
        return await asyncio.to_thread(self._read_first, paths)

    async def read_global_template(self, name: str) -> Optional[str]:
        if not self._is_safe_name(name):
            return None
        return await asyncio.to_thread(self._read_first, self._folder_candidates(self.global_dir, name))

    def list_templates(self) -> List[Tuple[str, str]]:
        """(file name, "project"|"global") for every .txt/.md template, project entries first."""
        found: List[Tuple[str, str]] = []
        seen: Set[Tuple[str, str]] = set()
        roots = [(folder / self.dir_name, "project") for folder in self._project_folders]
        roots.append((self.global_dir, "global"))
        for template_root, source in roots:
            for directory in self._folder_candidates(template_root, ""):
                try:
                    entries = sorted(directory.iterdir()) if directory.is_dir() else []
                except OSError as e:
                    logger.warning(f"Could not list templates in {directory}: {e}")
                    continue
                for entry in entries:
                    if entry.is_file() and entry.suffix in DEFAULT_EXTENSIONS and (entry.name, source) not in seen:
                        seen.add((entry.name, source))
                        found.append((entry.name, source))
        return found
