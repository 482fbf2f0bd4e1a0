# promptcomposer/main.py
# Launcher for `python -m promptcomposer.main`; logging is configured by the CLI callback.
from promptcomposer.cli import app

def run() -> None:
    app(prog_name="promptcomposer")

if __name__ == "__main__":
    run()
