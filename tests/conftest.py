# tests/conftest.py
import asyncio
import copy
from typing import Dict, List, Optional, Tuple

import pytest

from promptcomposer.config.loader import reset_config_cache
from promptcomposer.core.fs_scanner import FileAccess
from promptcomposer.core.models import DirectoryListing, NodeType, TreeNode
from promptcomposer.core.template_flattener import TemplateFlattener
from promptcomposer.core.template_store import TemplateStore

class FakeTemplateStore(TemplateStore):
    """In-memory template store that records every lookup."""

    def __init__(self, project: Optional[Dict[str, str]] = None, global_templates: Optional[Dict[str, str]] = None):
        self.project = dict(project or {})
        self.global_templates = dict(global_templates or {})
        self.calls: List[Tuple[str, str]] = []

    async def read_project_template(self, name: str) -> Optional[str]:
        self.calls.append(("project", name))
        return self.project.get(name)

    async def read_global_template(self, name: str) -> Optional[str]:
        self.calls.append(("global", name))
        return self.global_templates.get(name)

class FakeFileAccess(FileAccess):
    """In-memory file access. A content of None simulates an unreadable file."""

    def __init__(self, listings: Dict[str, DirectoryListing], contents: Optional[Dict[str, Optional[str]]] = None):
        self.listings = listings
        self.contents = dict(contents or {})
        self.reads: List[str] = []

    async def list_directory(self, path: str) -> DirectoryListing:
        if path not in self.listings:
            raise NotADirectoryError(path)
        return copy.deepcopy(self.listings[path])

    async def read_file(self, path: str) -> Optional[str]:
        self.reads.append(path)
        await asyncio.sleep(0)
        return self.contents.get(path)

def file_node(path: str) -> TreeNode:
    return TreeNode(name=path.rsplit("/", 1)[-1], path=path)

def dir_node(path: str, *children: TreeNode) -> TreeNode:
    return TreeNode(name=path.rsplit("/", 1)[-1], path=path, type=NodeType.DIRECTORY, children=list(children))

def listing_of(root_path: str, *children: TreeNode) -> DirectoryListing:
    return DirectoryListing(root_path=root_path, root_name=root_path.rsplit("/", 1)[-1], children=list(children))

@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keeps config, logs and the global template folder inside the test's tmp dir."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("PROMPTCOMPOSER_HOME", str(home / "appdata"))
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("PROMPTCOMPOSER_MODEL", raising=False)
    reset_config_cache()
    yield home
    reset_config_cache()

@pytest.fixture
def store():
    return FakeTemplateStore()

@pytest.fixture
def flattener(store):
    return TemplateFlattener(store)

@pytest.fixture
def project_listing():
    """/abs/proj with src/{a.ts,b.ts,c.ts}, an empty docs/ folder and readme.md."""
    return listing_of(
        "/abs/proj",
        dir_node("/abs/proj/docs"),
        dir_node("/abs/proj/src",
                 file_node("/abs/proj/src/a.ts"),
                 file_node("/abs/proj/src/b.ts"),
                 file_node("/abs/proj/src/c.ts")),
        file_node("/abs/proj/readme.md"),
    )

@pytest.fixture
def file_access(project_listing):
    return FakeFileAccess(
        {"/abs/proj": project_listing},
        {
            "/abs/proj/src/a.ts": "export const a = 1;\n",
            "/abs/proj/src/b.ts": "export const b = 2;\n",
            "/abs/proj/src/c.ts": "export const c = 3;\n",
            "/abs/proj/readme.md": "# Project\n",
        },
    )
