"""
Tagged success/failure results.

Provider clients and challenge handlers return a Result instead of raising
across component boundaries; only the web layer turns an Err into an HTTP
response.
"""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying a value."""

    value: T


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result carrying an error."""

    error: E


Result = Union[Ok[T], Err[E]]
