from pathlib import Path

from template_lens.transform.module import SourceKind

_KIND_ALIASES = {
    "hbs": "template",
    "handlebars": "template",
    "script": "script",
    "template": "template",
    "ts": "script",
    "typescript": "script",
    "gts": "script",
}

_EXTENSION_KIND_MAP: dict[str, SourceKind] = {
    ".gts": "script",
    ".hbs": "template",
    ".ts": "script",
}

DEFAULT_SCRIPT_EXTENSIONS = (".ts", ".gts")

# Scripts paired with a pod-layout template (``foo/template.hbs``), in lookup order.
_POD_SCRIPT_STEMS = ("component", "controller", "route")


def normalize_kind(kind: str) -> SourceKind:
    normalized = kind.strip().lower()
    resolved = _KIND_ALIASES.get(normalized)
    if resolved is None:
        raise ValueError(f"Unsupported file kind '{kind}'. Supported: {sorted(set(_KIND_ALIASES.values()))}")
    return resolved  # type: ignore[return-value]


def detect_kind_from_path(file_path: Path) -> SourceKind:
    if file_path.name.endswith(".d.ts"):
        raise ValueError(f"Declaration files are not transformed: {file_path.name}")
    suffix = file_path.suffix.lower()
    if suffix in _EXTENSION_KIND_MAP:
        return _EXTENSION_KIND_MAP[suffix]
    raise ValueError(f"Unsupported file extension: {suffix}")


def is_supported_path(file_path: Path) -> bool:
    try:
        detect_kind_from_path(file_path)
    except ValueError:
        return False
    return True


def companion_template_candidates(script_path: Path) -> list[Path]:
    """Templates that may pair with ``script_path``, most preferred first."""
    candidates = [script_path.with_suffix(".hbs")]
    if script_path.stem in _POD_SCRIPT_STEMS:
        candidates.append(script_path.with_name("template.hbs"))
    return candidates


def companion_script_candidates(
    template_path: Path, script_extensions: tuple[str, ...] = DEFAULT_SCRIPT_EXTENSIONS
) -> list[Path]:
    """Scripts that may pair with ``template_path``, most preferred first."""
    stems = [template_path.stem]
    if template_path.stem == "template":
        stems = [*_POD_SCRIPT_STEMS, template_path.stem]
    return [template_path.with_name(stem + extension) for stem in stems for extension in script_extensions]
