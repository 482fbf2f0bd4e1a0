# promptcomposer/config/paths.py
import os
import sys
from pathlib import Path

def _get_app_name() -> str:
    # Centralize the app name
    return "PromptComposer"

def get_user_data_dir() -> Path:
    """Get the per-user application data directory (created on demand)."""
    override = os.environ.get("PROMPTCOMPOSER_HOME")
    if override:
        path = Path(override)
    elif sys.platform == "win32":
        appdata_path = os.environ.get("APPDATA")
        if not appdata_path:
            # Fallback if APPDATA is not set (highly unlikely)
            path = Path.home() / "AppData/Roaming" / _get_app_name()
        else:
            path = Path(appdata_path) / _get_app_name()
    else:
        xdg = os.environ.get("XDG_CONFIG_HOME")
        base = Path(xdg) if xdg else Path.home() / ".config"
        path = base / _get_app_name().lower()

    path.mkdir(parents=True, exist_ok=True)
    return path

def get_user_config_file() -> Path:
    """Get the path to the user's config.json file."""
    return get_user_data_dir() / "config.json"

def get_user_log_dir() -> Path:
    """Get the path to the user's log directory."""
    path = get_user_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path

def get_global_template_dir(dir_name: str = ".prompt-composer") -> Path:
    """Global template folder shared by every project (not created here)."""
    return Path.home() / dir_name
