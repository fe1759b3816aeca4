from typing import Protocol


class FileSystem(Protocol):
    def file_exists(self, path: str) -> bool: ...

    def read_file(self, path: str) -> str | None: ...

    def read_directory(
        self,
        path: str,
        extensions: tuple[str, ...] | None = None,
        depth: int | None = None,
    ) -> list[str]: ...
