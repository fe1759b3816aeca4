from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from template_lens.models import Diagnostic, Location, QuickInfo

if TYPE_CHECKING:
    from template_lens.core.config import ConfigScope
    from template_lens.core.transform_manager import TransformManager


class HostCompiler(Protocol):
    """The type checker that runs over transformed modules.

    Offsets it receives and reports are in transformed coordinates; files are
    read through the ``TransformManager`` it was built with.
    """

    def get_diagnostics(self, path: str) -> list[Diagnostic]: ...

    def get_quick_info(self, path: str, offset: int) -> QuickInfo | None: ...

    def get_definition(self, path: str, offset: int) -> list[Location]: ...


HostFactory = Callable[["ConfigScope", "TransformManager"], HostCompiler]
