# promptcomposer/config/schema.py
from pydantic import BaseModel, Field, field_validator
from typing import List

class AppConfig(BaseModel):
    model: str = "gpt-4o" # Default estimator profile
    max_tokens: int = 100000
    # Template lookup
    template_dir_name: str = ".prompt-composer"
    template_subdirectories: List[str] = Field(default_factory=lambda: ["template", ""]) # "" = the folder itself
    template_extensions: List[str] = Field(default_factory=lambda: [".txt", ".md"])
    max_flatten_depth: int = 10
    max_flatten_expansions: int = 1000
    # File listing
    ignore_patterns: List[str] = Field(default_factory=lambda: [
        # Version control
        ".git", ".svn", ".hg",
        # IDE/Editor config
        ".idea", ".vscode",
        # Python specific
        "__pycache__", "*.pyc", ".pytest_cache", ".mypy_cache",
        # Virtual environments
        "venv", ".venv",
        # Build artifacts / dependencies
        "node_modules", "dist", "build",
        # OS specific
        ".DS_Store", "Thumbs.db",
    ])
    ignore_files: List[str] = Field(default_factory=lambda: [".gitignore", ".promptignore"])
    include_project_map: bool = True
    project_folders: List[str] = Field(default_factory=list)

    @field_validator("max_flatten_depth", "max_flatten_expansions", "max_tokens")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("template_extensions")
    @classmethod
    def _dotted(cls, value: List[str]) -> List[str]:
        return [ext if ext.startswith(".") else f".{ext}" for ext in value]
