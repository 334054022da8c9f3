"""Error taxonomy shared by the tokenizer, builder, renderer and recovery layer"""

from typing import Any


class ParserError(Exception):
    """Base error carrying a machine-readable code and optional source position."""

    def __init__(
        self,
        message: str,
        code: str = "PARSER_ERROR",
        line: int | None = None,
        column: int | None = None,
        recoverable: bool = True,
        ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.line = line
        self.column = column
        self.recoverable = recoverable

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        where = f"line {self.line + 1}"
        if self.column is not None:
            where += f", column {self.column + 1}"
        return f"{self.message} ({where})"


class ValidationError(ParserError):
    """Document failed structural validation; errors hold {path, message, code} entries."""

    def __init__(
        self,
        message: str,
        errors: list[dict[str, str]] | None = None,
        partial_result: Any = None,
        ):
        super().__init__(message, code="VALIDATION_ERROR", recoverable=False)
        self.errors = errors or []
        self.partial_result = partial_result

    @classmethod
    def from_pydantic(cls, exc, partial_result: Any = None) -> "ValidationError":
        """Wrap a pydantic ValidationError, flattening its error locations into dotted paths."""
        errors = [
            {
                "path": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
                "code": err["type"],
            }
            for err in exc.errors()
        ]
        return cls(f"Invalid document: {len(errors)} error(s)", errors, partial_result)


class ConversionError(ParserError):
    """A single node (or mark) could not be converted."""

    def __init__(self, message: str, node_type: str, fallback: Any = None):
        super().__init__(message, code="CONVERSION_ERROR")
        self.node_type = node_type
        self.fallback = fallback


class MetadataError(ParserError):
    """A metadata comment carried a payload that is not a JSON object."""

    def __init__(self, message: str, raw: str, line: int | None = None):
        super().__init__(message, code="INVALID_METADATA", line=line, recoverable=False)
        self.raw = raw
