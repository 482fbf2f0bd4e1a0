# promptcomposer/core/composition_io.py
import json
import os
import tempfile
from pathlib import Path
from typing import Annotated, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError
from loguru import logger

from .composition import Composition
from .errors import CompositionFormatError
from .models import FilesBlock, PromptResponseBlock, TemplateBlock, TextBlock

FORMAT_VERSION = 1

BlockField = Annotated[Union[TextBlock, TemplateBlock, FilesBlock, PromptResponseBlock],
                       Field(discriminator="kind")]

class CompositionSettings(BaseModel):
    model: str = "gpt-4o"
    max_tokens: int = 100000

class CompositionDocument(BaseModel):
    version: int = FORMAT_VERSION
    settings: CompositionSettings = Field(default_factory=CompositionSettings)
    blocks: List[BlockField] = Field(default_factory=list)

def dump_composition(composition: Composition, settings: Optional[CompositionSettings] = None) -> str:
    document = CompositionDocument(settings=settings or CompositionSettings(), blocks=composition.blocks)
    return document.model_dump_json(indent=2)

def parse_composition(data: str) -> Tuple[Composition, CompositionSettings]:
    try:
        raw = json.loads(data)
    except json.JSONDecodeError as e:
        raise CompositionFormatError(f"Composition is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise CompositionFormatError(f"Composition root must be a JSON object, got {type(raw).__name__}")
    version = raw.get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise CompositionFormatError(f"Unsupported composition version: {version}")
    try:
        document = CompositionDocument.model_validate(raw)
    except ValidationError as e:
        raise CompositionFormatError(f"Invalid composition: {e}") from e

    composition = Composition(document.blocks)
    for problem in composition.validate():
        logger.warning(f"Loaded composition: {problem}")
    return composition, document.settings

def load_composition(path: Union[str, Path]) -> Tuple[Composition, CompositionSettings]:
    path = Path(path)
    logger.info(f"Loading composition from: {path}")
    try:
        data = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise CompositionFormatError(f"Composition file is not UTF-8: {path}") from e
    composition, settings = parse_composition(data)
    logger.info(f"Loaded {len(composition)} block(s) from {path}")
    return composition, settings

def save_composition(path: Union[str, Path], composition: Composition,
                     settings: Optional[CompositionSettings] = None) -> None:
    """Writes the composition atomically via a temporary file in the target directory."""
    path = Path(path)
    logger.info(f"Saving composition to: {path}")
    temp_file_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode='w',
            encoding='utf-8',
            dir=path.parent,
            prefix=f".{path.name}_tmp",
            suffix=".json",
            delete=False
        ) as temp_f:
            temp_file_path = Path(temp_f.name)
            temp_f.write(dump_composition(composition, settings))
            temp_f.flush()
            os.fsync(temp_f.fileno())

        os.replace(temp_file_path, path)
        temp_file_path = None
        logger.info(f"Saved {len(composition)} block(s).")
    finally:
        if temp_file_path and temp_file_path.exists():
            logger.warning(f"Cleaning up leftover temporary composition file: {temp_file_path}")
            try: temp_file_path.unlink()
            except OSError as unlink_err: logger.error(f"Failed to remove temporary file {temp_file_path}: {unlink_err}")
