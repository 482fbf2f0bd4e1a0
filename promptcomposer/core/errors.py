# promptcomposer/core/errors.py

class PromptComposerError(Exception):
    """Base class for errors raised at the edges of the engine."""

class TemplateStoreError(PromptComposerError):
    """A template store backend is mis-configured."""

class CompositionFormatError(PromptComposerError):
    """A persisted composition cannot be read back."""
