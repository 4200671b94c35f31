"""Process exit codes for the pforge CLI.

Values are part of the CLI contract that CI scripts rely on:
- 0: success
- 1: user error (bad arguments, invalid version map, malformed versions)
- 2: environment error (dotnet missing or not runnable)
- 3: build error (pack or sign failed)
- 4: network error (registry unreachable, GitHub or push failures)
- 5: I/O error (unreadable or unwritable project files)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
