from __future__ import annotations


class ProcessBuilderError(Exception):
    pass


class InvalidArgumentError(ProcessBuilderError, TypeError):
    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(
            f"Expected a ProcessBuilder or Builder, got {type(value).__name__}"
        )


class SpawnOptionError(ProcessBuilderError, ValueError):
    """An option in the spawn arguments that the host cannot apply."""

    def __init__(self, key: object, message: str) -> None:
        self.key = key
        self.message = message
        super().__init__(f"Invalid spawn option {key!r}: {message}")
