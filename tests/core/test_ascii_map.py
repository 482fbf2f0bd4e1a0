# tests/core/test_ascii_map.py
import pytest

from promptcomposer.core.ascii_map import generate_ascii_map, render_ascii_map, render_listing

from conftest import FakeFileAccess, dir_node, file_node, listing_of

def test_project_map_scenario():
    listing = listing_of(
        "/abs/proj",
        file_node("/abs/proj/readme.md"),
        dir_node("/abs/proj/src", file_node("/abs/proj/src/a.ts")),
    )
    assert render_listing(listing) == (
        "<file_map>\n"
        "/abs/proj\n"
        "├── [D] src\n"
        "│   └── a.ts\n"
        "└── readme.md\n"
        "</file_map>"
    )

def test_last_directory_uses_blank_prefix():
    listing = listing_of(
        "/abs/proj",
        dir_node("/abs/proj/a", dir_node("/abs/proj/a/b", file_node("/abs/proj/a/b/c.txt"))),
        dir_node("/abs/proj/x", file_node("/abs/proj/x/y.txt"), file_node("/abs/proj/x/z.txt")),
    )
    assert render_listing(listing).splitlines() == [
        "<file_map>",
        "/abs/proj",
        "├── [D] a",
        "│   └── [D] b",
        "│       └── c.txt",
        "└── [D] x",
        "    ├── y.txt",
        "    └── z.txt",
        "</file_map>",
    ]

def test_directories_first_then_names():
    listing = listing_of(
        "/r",
        file_node("/r/b.txt"),
        file_node("/r/Z.txt"),
        dir_node("/r/zeta"),
        file_node("/r/B.txt"),
        file_node("/r/a.txt"),
        dir_node("/r/Alpha"),
    )
    lines = render_listing(listing).splitlines()[2:-1]
    assert lines == [
        "├── [D] Alpha",
        "├── [D] zeta",
        "├── a.txt",
        "├── b.txt",
        "├── B.txt",
        "└── Z.txt",
    ]

def test_empty_root_has_only_path_line():
    assert render_listing(listing_of("/abs/empty")) == "<file_map>\n/abs/empty\n</file_map>"

def test_multiple_roots_separated_by_blank_line():
    first = listing_of("/a", file_node("/a/1.txt"))
    second = listing_of("/b", file_node("/b/2.txt"))
    rendered = render_ascii_map([first, second])
    assert rendered == render_listing(first) + "\n\n" + render_listing(second)

def test_no_roots_renders_nothing():
    assert render_ascii_map([]) == ""

@pytest.mark.asyncio
async def test_generate_skips_unlistable_folders():
    access = FakeFileAccess({"/ok": listing_of("/ok", file_node("/ok/f.py"))})
    rendered = await generate_ascii_map(["/missing", "/ok"], access)
    assert rendered == "<file_map>\n/ok\n└── f.py\n</file_map>"
