import os
from pathlib import Path

_SKIPPED_DIRECTORIES = frozenset({"node_modules", ".git"})


class RealFileSystem:
    """Disk-backed ``FileSystem``."""

    def file_exists(self, path: str) -> bool:
        return Path(path).is_file()

    def read_file(self, path: str) -> str | None:
        try:
            return Path(path).read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError):
            return None

    def read_directory(
        self,
        path: str,
        extensions: tuple[str, ...] | None = None,
        depth: int | None = None,
    ) -> list[str]:
        root = Path(path)
        results: list[str] = []
        for current, directories, files in os.walk(root):
            current_path = Path(current)
            level = len(current_path.relative_to(root).parts)
            directories[:] = sorted(d for d in directories if d not in _SKIPPED_DIRECTORIES)
            if depth is not None and level >= depth:
                directories[:] = []
            for name in sorted(files):
                if extensions is None or any(name.endswith(extension) for extension in extensions):
                    results.append(str(current_path / name))
        return results
