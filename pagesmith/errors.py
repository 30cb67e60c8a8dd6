from __future__ import annotations

from pathlib import Path
from typing import Optional


class BuildError(Exception):
    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.path}: {self.message}"


class NotFoundError(BuildError):
    pass


class TemplateNotFoundError(NotFoundError):
    pass


class InvalidFrontmatterError(BuildError):
    def __init__(self, message: str, path: Optional[Path] = None, field: Optional[str] = None):
        super().__init__(message, path)
        self.field = field


class CompilationError(BuildError):
    def __init__(self, message: str, path: Optional[Path] = None, diagnostic: str = ""):
        super().__init__(message, path)
        self.diagnostic = diagnostic

    def __str__(self) -> str:
        text = super().__str__()
        if self.diagnostic:
            return f"{text}\n{self.diagnostic}"
        return text


class ContentPermissionError(BuildError):
    """A source, template or output path could not be read or written."""


class OutputCollisionError(BuildError):
    pass


class UnresolvedPlaceholderError(BuildError):
    def __init__(self, message: str, path: Optional[Path] = None, names: tuple[str, ...] = ()):
        super().__init__(message, path)
        self.names = names


class ConfigError(BuildError):
    pass
