from typing import Literal, NamedTuple, Protocol

FileChangeKind = Literal["added", "changed", "removed"]


class FileChange(NamedTuple):
    kind: FileChangeKind
    path: str


class FileWatcherPort(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...
