# -*- coding: utf-8 -*-
"""Result types returned at validation and decryption boundaries."""

from __future__ import annotations

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class FieldError(BaseModel):
    """One validation failure, addressed by a dotted field path."""

    path: str = Field(default="", description="Dotted path to the field")
    message: str = Field(..., description="Human-readable error message")

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class Result(Generic[T]):
    """Either a value or a list of errors, never both."""

    __slots__ = ("value", "errors")

    def __init__(
        self,
        value: Optional[T] = None,
        errors: Optional[List[FieldError]] = None,
    ):
        self.value = value
        self.errors: List[FieldError] = list(errors or [])

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, *errors: FieldError) -> "Result[T]":
        return cls(errors=list(errors))

    @classmethod
    def fail_message(cls, message: str, path: str = "") -> "Result[T]":
        return cls(errors=[FieldError(path=path, message=message)])

    @property
    def success(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.success

    def messages(self) -> List[str]:
        return [str(e) for e in self.errors]

    def __repr__(self) -> str:
        if self.success:
            return f"Result.ok({self.value!r})"
        return f"Result.fail({self.messages()!r})"


# Kept as a distinct name so call sites read as validation.
ValidationResult = Result
