# tests/core/test_template_store.py
import pytest

from promptcomposer.config.schema import AppConfig
from promptcomposer.core.errors import TemplateStoreError
from promptcomposer.core.template_store import LocalTemplateStore, TemplateCache, resolve_template

from conftest import FakeTemplateStore

@pytest.fixture
def layout(tmp_path):
    """A project with templates in .prompt-composer/template/ and .prompt-composer/, plus a global folder."""
    project = tmp_path / "proj"
    (project / ".prompt-composer" / "template").mkdir(parents=True)
    (project / ".prompt-composer" / "template" / "REVIEW.txt").write_text("project review", encoding="utf-8")
    (project / ".prompt-composer" / "ROOTED.md").write_text("rooted", encoding="utf-8")
    global_dir = tmp_path / "global"
    global_dir.mkdir()
    (global_dir / "REVIEW.txt").write_text("global review", encoding="utf-8")
    (global_dir / "SHARED.txt").write_text("shared", encoding="utf-8")
    (global_dir / "notes.json").write_text("{}", encoding="utf-8")
    return project, global_dir

@pytest.mark.asyncio
async def test_project_and_global_reads(layout):
    project, global_dir = layout
    store = LocalTemplateStore(project_folders=[project], global_dir=global_dir)
    assert await store.read_project_template("REVIEW.txt") == "project review"
    assert await store.read_project_template("ROOTED.md") == "rooted"
    assert await store.read_project_template("SHARED.txt") is None
    assert await store.read_global_template("SHARED.txt") == "shared"

@pytest.mark.asyncio
async def test_resolution_prefers_project(layout):
    project, global_dir = layout
    store = LocalTemplateStore(project_folders=[project], global_dir=global_dir)
    assert await resolve_template(store, "REVIEW") == "project review"
    assert await resolve_template(store, "SHARED") == "shared"
    assert await resolve_template(store, "ABSENT") is None

@pytest.mark.asyncio
async def test_resolution_order_calls():
    store = FakeTemplateStore()
    await resolve_template(store, "X")
    assert store.calls == [
        ("project", "X"), ("global", "X"),
        ("project", "X.txt"), ("global", "X.txt"),
        ("project", "X.md"), ("global", "X.md"),
    ]

@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["../secret.txt", "sub/file.txt", "..", "/etc/passwd", "a" * 256, ""])
async def test_unsafe_names_are_not_found(layout, name):
    project, global_dir = layout
    (project / "secret.txt").write_text("nope", encoding="utf-8")
    store = LocalTemplateStore(project_folders=[project], global_dir=global_dir)
    assert await store.read_project_template(name) is None
    assert await store.read_global_template(name) is None

def test_global_dir_must_be_a_directory(tmp_path):
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("x", encoding="utf-8")
    with pytest.raises(TemplateStoreError):
        LocalTemplateStore(global_dir=not_a_dir)

def test_default_global_dir_is_under_home(isolated_home):
    store = LocalTemplateStore()
    assert store.global_dir == isolated_home / ".prompt-composer"

def test_candidate_paths_and_folder_replacement(layout, tmp_path):
    project, global_dir = layout
    store = LocalTemplateStore(project_folders=[project], global_dir=global_dir)
    assert store.candidate_paths("A.txt") == [
        project.resolve() / ".prompt-composer" / "template" / "A.txt",
        project.resolve() / ".prompt-composer" / "A.txt",
        global_dir / "template" / "A.txt",
        global_dir / "A.txt",
    ]
    store.set_project_folders([])
    assert store.project_folders == []

def test_list_templates(layout):
    project, global_dir = layout
    store = LocalTemplateStore(project_folders=[project], global_dir=global_dir)
    assert store.list_templates() == [
        ("REVIEW.txt", "project"),
        ("ROOTED.md", "project"),
        ("REVIEW.txt", "global"),
        ("SHARED.txt", "global"),
    ]

def test_from_config(layout):
    project, _ = layout
    config = AppConfig(template_subdirectories=[""], project_folders=[str(project)])
    store = LocalTemplateStore.from_config(config)
    assert store.subdirectories == [""]
    assert store.project_folders == [project.resolve()]

def test_template_cache():
    cache = TemplateCache()
    assert cache.get("A") is None
    cache.mark_missing("A")
    assert cache.is_missing("A")

    cache.put("A", "")
    assert cache.get("A") == ""
    assert not cache.is_missing("A")
    assert len(cache) == 1

    cache.mark_missing("B")
    cache.clear()
    assert cache.get("A") is None
    assert not cache.is_missing("B")
