from pathlib import Path

from template_lens.core.config import ConfigLoader, ConfigScope
from template_lens.core.document_cache import DocumentCache
from template_lens.core.fs import RealFileSystem
from template_lens.core.transform_manager import TransformManager
from template_lens.errors import LensError


def open_workspace(path: str | Path, config_loader: ConfigLoader | None = None) -> TransformManager:
    """Build an overlay for the configuration that governs ``path``."""
    loader = config_loader or ConfigLoader()
    config: ConfigScope | None = loader.config_for_file(Path(path).absolute())
    if config is None:
        raise LensError(f"No tsconfig.json or jsconfig.json with a 'lens' section applies to {path}")
    return TransformManager(config, DocumentCache(RealFileSystem(), loader))


def eligible_files(manager: TransformManager) -> list[str]:
    root = str(manager.config.root_dir)
    return sorted(path for path in manager.read_directory(root) if manager.is_eligible(path))
