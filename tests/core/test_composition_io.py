# tests/core/test_composition_io.py
import json

import pytest

from promptcomposer.core.block_parser import parse_blocks
from promptcomposer.core.composition import Composition
from promptcomposer.core.composition_io import (CompositionSettings, dump_composition, load_composition,
                                                parse_composition, save_composition)
from promptcomposer.core.errors import CompositionFormatError
from promptcomposer.core.models import (FileEntry, FilesBlock, PromptResponseBlock, TemplateBlock,
                                        TemplateVariable, TextBlock)

@pytest.fixture
def composition():
    comp = Composition(parse_blocks("Review {{TEXT_BLOCK=carefully}}{{FILE_BLOCK}}{{PROMPT_RESPONSE=answer.txt}}",
                                    group_id="g1", lead_block_id="lead").blocks)
    comp.add_block(TemplateBlock(content="Hi {{name}}", variables=[TemplateVariable("name", "team")]))
    comp.set_files_block([FileEntry("/p/a.py", "print(1)\n", "python")], "<file_map>\n/p\n</file_map>")
    response = comp.blocks[3]
    response.content = "captured answer"
    return comp

def test_save_and_load_preserves_every_field(tmp_path, composition):
    target = tmp_path / "prompt.json"
    save_composition(target, composition, CompositionSettings(model="gpt-4", max_tokens=5000))

    loaded, settings = load_composition(target)
    assert loaded.blocks == composition.blocks
    assert settings.model == "gpt-4" and settings.max_tokens == 5000
    assert [type(b) for b in loaded] == [TemplateBlock, TextBlock, FilesBlock, PromptResponseBlock, TemplateBlock]
    assert loaded.blocks[0].group.is_lead and not loaded.blocks[0].group.locked
    assert loaded.blocks[1].group.locked
    assert loaded.blocks[4].group.group_id is None

def test_save_leaves_no_temporary_files(tmp_path, composition):
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    save_composition(out_dir / "prompt.json", composition)
    save_composition(out_dir / "prompt.json", composition)
    assert [p.name for p in out_dir.iterdir()] == ["prompt.json"]

def test_failed_save_removes_temporary_file(tmp_path, composition, mocker):
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    mocker.patch("promptcomposer.core.composition_io.os.replace", side_effect=OSError("disk full"))
    with pytest.raises(OSError):
        save_composition(out_dir / "prompt.json", composition)
    assert list(out_dir.iterdir()) == []

def test_document_shape(composition):
    document = json.loads(dump_composition(composition))
    assert document["version"] == 1
    assert document["settings"] == {"model": "gpt-4o", "max_tokens": 100000}
    assert [b["kind"] for b in document["blocks"]] == ["template", "text", "files", "prompt_response", "template"]
    assert document["blocks"][0]["group"] == {"group_id": "g1", "is_lead": True, "locked": False}

@pytest.mark.parametrize("payload", [
    "not json at all",
    "[]",
    json.dumps({"version": 99, "blocks": []}),
    json.dumps({"version": 1, "blocks": [{"kind": "mystery", "content": "x"}]}),
    json.dumps({"version": 1, "blocks": [{"kind": "text", "content": 5}]}),
])
def test_invalid_documents_raise(payload):
    with pytest.raises(CompositionFormatError):
        parse_composition(payload)

def test_minimal_document_gets_defaults():
    composition, settings = parse_composition(json.dumps({"blocks": [{"kind": "text", "content": "hi"}]}))
    block = composition.blocks[0]
    assert isinstance(block, TextBlock)
    assert block.content == "hi"
    assert block.id
    assert settings == CompositionSettings()

def test_load_missing_file_raises_os_error(tmp_path):
    with pytest.raises(OSError):
        load_composition(tmp_path / "absent.json")
