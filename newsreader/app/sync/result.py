"""Tagged load states carried by a feed's result channel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Loading:
    """A fetch has started and no terminal state is known yet."""


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T


@dataclass(frozen=True)
class Error:
    message: str


LOADING = Loading()

Result = Union[Loading, Success[T], Error]
