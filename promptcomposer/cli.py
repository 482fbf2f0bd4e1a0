# promptcomposer/cli.py
import asyncio
from pathlib import Path
from typing import List, Optional, Sequence

import typer
from loguru import logger

from .services.logging import setup_logging
from .config.loader import get_config
from .config.schema import AppConfig
from .core.ascii_map import generate_ascii_map
from .core.block_parser import parse_blocks
from .core.composition import Composition
from .core.composition_io import CompositionSettings, load_composition, save_composition
from .core.errors import PromptComposerError
from .core.fs_scanner import LocalFileAccess
from .core.models import Block, FilesBlock, NodeState, PromptResponseBlock, TemplateBlock, TextBlock
from .core.prompt_flattener import PromptRenderer
from .core.selection import SelectionEngine
from .core.template_flattener import TemplateFlattener
from .core.template_store import LocalTemplateStore
from .core.token_counter import estimate_tokens, token_usage
from . import __version__

# --- Typer App ---
app = typer.Typer(help="PromptComposer CLI - flatten templates and build prompts from project files.")

def version_callback(value: bool):
    if value:
        print(f"PromptComposer CLI Version: {__version__}")
        raise typer.Exit()

@app.callback()
def main_options(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    version: Optional[bool] = typer.Option(None, "--version", callback=version_callback, is_eager=True, help="Show version and exit."),
):
    """ Main callback to set up logging """
    log_level = "DEBUG" if verbose else "INFO"
    setup_logging(level=log_level, verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["VERBOSE"] = verbose

# --- Helpers ---

def _read_text_arg(value: str) -> str:
    """A path to an existing file is read; anything else is taken as the template text itself."""
    candidate = Path(value)
    try:
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Could not read {candidate}: {e}")
        raise typer.Exit(code=1)
    return value

def _project_folders(config: AppConfig, project: Optional[List[Path]]) -> List[str]:
    return [str(p) for p in project] if project else list(config.project_folders)

def _make_flattener(config: AppConfig, folders: Sequence[str]) -> TemplateFlattener:
    store = LocalTemplateStore.from_config(config, folders)
    return TemplateFlattener.from_config(store, config)

def _describe_block(index: int, block: Block) -> str:
    flags = []
    if block.group.is_lead:
        flags.append("lead")
    if block.group.locked:
        flags.append("locked")
    if isinstance(block, (TextBlock, TemplateBlock)):
        detail = repr(block.content)
    elif isinstance(block, PromptResponseBlock):
        detail = f"source={block.source_file}"
    elif isinstance(block, FilesBlock):
        detail = f"{len(block.files)} file(s)"
    else:
        detail = ""
    return f"{index:>3}  {block.kind:<16} {block.label} [{','.join(flags)}] {detail}".rstrip()

def _emit(text: str, output: Optional[Path]) -> None:
    if output is None:
        typer.echo(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    logger.success(f"Prompt successfully written to: {output}")

def _warn_all(warnings: Sequence[str]) -> None:
    for warning in warnings:
        typer.echo(f"warning: {warning}", err=True)

async def _select_files(engine: SelectionEngine, folders: Sequence[str], select: Sequence[Path]) -> None:
    for folder in folders:
        await engine.add_folder(folder)
    for raw_path in select:
        path = raw_path.expanduser().resolve()
        if not any(path == Path(root) or Path(root) in path.parents for root in engine.folders):
            await engine.add_folder(str(path if path.is_dir() else path.parent))
        if engine.state_of(str(path)) != NodeState.ALL:
            engine.toggle(str(path))
    await engine.wait_until_loaded()

# --- Commands ---

@app.command()
def flatten(
    template: str = typer.Argument(..., help="Template text, or a path to a template file."),
    project: Optional[List[Path]] = typer.Option(None, "--project", "-p", help="Project folder(s) holding .prompt-composer templates."),
):
    """Prints the template with every nested template reference inlined."""
    config = get_config()
    try:
        flattener = _make_flattener(config, _project_folders(config, project))
        result = asyncio.run(flattener.flatten(_read_text_arg(template)))
    except PromptComposerError as e:
        logger.error(f"Flatten failed: {e}")
        raise typer.Exit(code=1)
    typer.echo(result.text)
    _warn_all(result.warnings)

@app.command()
def parse(
    template: str = typer.Argument(..., help="Template text, or a path to a template file."),
    project: Optional[List[Path]] = typer.Option(None, "--project", "-p", help="Project folder(s) holding .prompt-composer templates."),
):
    """Flattens a template and prints the blocks it parses into."""
    config = get_config()
    try:
        flattener = _make_flattener(config, _project_folders(config, project))
        flattened = asyncio.run(flattener.flatten(_read_text_arg(template)))
    except PromptComposerError as e:
        logger.error(f"Parse failed: {e}")
        raise typer.Exit(code=1)
    result = parse_blocks(flattened.text)
    for index, block in enumerate(result.blocks):
        typer.echo(_describe_block(index, block))
    _warn_all(flattened.warnings + result.warnings)

@app.command()
def build(
    template: str = typer.Argument(..., help="Template text, or a path to a template file."),
    project: Optional[List[Path]] = typer.Option(None, "--project", "-p", help="Project folder(s) for templates and file selection."),
    select: Optional[List[Path]] = typer.Option(None, "--select", "-s", help="File or folder to select (repeatable)."),
    no_map: bool = typer.Option(False, "--no-map", help="Leave the directory map out of file blocks."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the prompt here instead of stdout.", resolve_path=True),
    save: Optional[Path] = typer.Option(None, "--save", help="Also store the built composition as JSON.", resolve_path=True),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model profile for the token estimate."),
):
    """
    Builds a prompt: flattens and parses a template, selects files,
    fills the file blocks and renders the result.
    """
    config = get_config()
    model = model or config.model
    folders = _project_folders(config, project)

    async def _build():
        flattener = _make_flattener(config, folders)
        composition = Composition()
        parsed = await composition.add_template(_read_text_arg(template), flattener)
        _warn_all(parsed.warnings)

        has_files_block = any(isinstance(b, FilesBlock) for b in composition)
        if select or has_files_block:
            engine = SelectionEngine(LocalFileAccess.from_config(config),
                                     on_folders_changed=lambda _folders: flattener.clear_cache())
            await _select_files(engine, folders, select or [])
            ascii_map = "" if no_map else engine.ascii_map()
            composition.set_files_block(engine.selected_entries(), ascii_map,
                                        include_project_map=not no_map and config.include_project_map)
            logger.info(f"Selected {len(engine.selected_paths())} file(s) for the prompt.")

        prompt = await PromptRenderer(flattener).render(composition.blocks)
        return composition, prompt

    try:
        composition, prompt = asyncio.run(_build())
        _emit(prompt, output)
        if save is not None:
            save_composition(save, composition, CompositionSettings(model=model, max_tokens=config.max_tokens))
    except (PromptComposerError, OSError) as e:
        logger.error(f"Build failed: {e}")
        raise typer.Exit(code=1)

    usage = token_usage(composition.blocks, model)
    for block in composition:
        logger.debug(f"Block {block.id} ({block.label}): {usage.by_block.get(block.id, 0)} tokens")
    total = estimate_tokens(prompt, model)
    logger.info(f"Final Token Count: {total}/{config.max_tokens} ({model})")
    if total > config.max_tokens:
        logger.warning(f"Prompt exceeds the token budget by {total - config.max_tokens} tokens.")

@app.command()
def render(
    composition_file: Path = typer.Argument(..., help="Saved composition (JSON).", exists=True, dir_okay=False, resolve_path=True),
    project: Optional[List[Path]] = typer.Option(None, "--project", "-p", help="Project folder(s) holding .prompt-composer templates."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the prompt here instead of stdout.", resolve_path=True),
):
    """Renders a saved composition."""
    config = get_config()
    try:
        composition, settings = load_composition(composition_file)
        flattener = _make_flattener(config, _project_folders(config, project))
        prompt = asyncio.run(PromptRenderer(flattener).render(composition.blocks))
        _emit(prompt, output)
    except (PromptComposerError, OSError) as e:
        logger.error(f"Render failed: {e}")
        raise typer.Exit(code=1)
    logger.info(f"Final Token Count: {estimate_tokens(prompt, settings.model)}/{settings.max_tokens} ({settings.model})")

@app.command("map")
def map_(
    folders: List[Path] = typer.Argument(..., help="Folder(s) to map."),
):
    """Prints the directory map of one or more folders."""
    config = get_config()
    ascii_map = asyncio.run(generate_ascii_map([str(f) for f in folders], LocalFileAccess.from_config(config)))
    if not ascii_map:
        logger.error("None of the given folders could be listed.")
        raise typer.Exit(code=1)
    typer.echo(ascii_map)

@app.command()
def tokens(
    file: Path = typer.Argument(..., help="Text file to measure.", exists=True, dir_okay=False, readable=True),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model profile for the estimate."),
):
    """Prints the token estimate for a file's text."""
    model = model or get_config().model
    try:
        text = file.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.error(f"Could not read {file}: {e}")
        raise typer.Exit(code=1)
    typer.echo(str(estimate_tokens(text, model)))

@app.command()
def templates(
    project: Optional[List[Path]] = typer.Option(None, "--project", "-p", help="Project folder(s) holding .prompt-composer templates."),
):
    """Lists the templates available to the flattener."""
    config = get_config()
    try:
        store = LocalTemplateStore.from_config(config, _project_folders(config, project))
    except PromptComposerError as e:
        logger.error(f"Template store unavailable: {e}")
        raise typer.Exit(code=1)
    found = store.list_templates()
    if not found:
        logger.warning("No templates found.")
    for name, source in found:
        typer.echo(f"{name}\t{source}")

if __name__ == "__main__":
    app()
