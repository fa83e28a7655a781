from __future__ import annotations


class InvalidFile(ValueError):
    def __init__(self, rule: str, message: str) -> None:
        super().__init__(message)
        self.rule = rule


class StorageFailure(RuntimeError):
    pass


class OCRProcessingFailure(RuntimeError):
    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class ReceiptNotFound(KeyError):
    pass


class InvalidTransition(RuntimeError):
    pass


class PipelineClosed(RuntimeError):
    pass
