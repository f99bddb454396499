#!/usr/bin/env python3
"""
Result types - Outcome of fallible filesystem and network operations
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union


class ErrorKind(Enum):
    """Reason an operation failed"""
    NOT_FOUND = 'No such file or directory'
    NOT_A_DIRECTORY = 'Not a directory'
    IS_A_DIRECTORY = 'Is a directory'
    EXISTS = 'File exists'
    NOT_EMPTY = 'Directory not empty'
    INVALID_ARGUMENT = 'Invalid argument'
    UNKNOWN_USER = 'invalid user'
    UNKNOWN_GROUP = 'invalid group'
    PERMISSION_DENIED = 'Operation not permitted'
    BUSY = 'Device or resource busy'
    CONNECTION_REFUSED = 'Connection refused'


@dataclass(frozen=True)
class Ok:
    """Successful outcome carrying an optional value"""
    value: Any = None
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Err:
    """Failed outcome.

    ``message`` is already phrased as the tail of a Unix diagnostic, e.g.
    ``"cannot remove 'x': No such file or directory"``, so callers only
    prefix it with the command name.
    """
    kind: ErrorKind
    message: str
    ok: ClassVar[bool] = False

    def __str__(self) -> str:
        return self.message


Result = Union[Ok, Err]
