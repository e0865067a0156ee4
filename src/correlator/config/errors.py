"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A setting holds a value the engine cannot run with."""

    def __init__(self, setting: str, problem: str) -> None:
        self.setting = setting
        super().__init__(f"{setting} {problem}")
