"""Loaders for ``[#IMPORT]`` (and path-based ``[#INCLUDE]``) documents."""

from __future__ import annotations

import posixpath
from collections.abc import Mapping
from pathlib import Path

from echo_pdk.constants import TEMPLATE_EXTENSION
from echo_pdk.exceptions import EvaluationError

__all__ = ["FileImportLoader", "StaticImportLoader"]


def _check_import_path(path: str) -> None:
    if not path or not path.strip():
        raise EvaluationError("Import path cannot be empty")
    if "://" in path:
        raise EvaluationError(f"Import path must be a relative file path: {path}")
    if path.startswith(("/", "\\")) or Path(path).is_absolute():
        raise EvaluationError(f"Import path must be relative: {path}")


class FileImportLoader:
    """Load imported templates from disk, confined to a root directory.

    Paths are resolved relative to the importing document (or the root for
    the top-level template). A missing ``.echo`` extension is added when the
    bare path does not exist. Paths that resolve outside the root are
    rejected.

    Args:
        root: Directory imports may not escape. Defaults to the working
            directory.
    """

    def __init__(self, root: Path | None = None, encoding: str = "utf-8") -> None:
        self.root = (root or Path.cwd()).resolve()
        self.encoding = encoding

    def load(self, path: str, *, relative_to: str | None = None) -> tuple[str, str]:
        _check_import_path(path)
        base = Path(relative_to).parent if relative_to else self.root
        candidate = (base / path).resolve()
        if not candidate.is_relative_to(self.root):
            raise EvaluationError(f"Import path escapes the import root: {path}")
        if not candidate.exists() and not candidate.suffix:
            candidate = candidate.with_suffix(TEMPLATE_EXTENSION)
        try:
            source = candidate.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise EvaluationError(f"Cannot read import {path!r}: {e}") from e
        return str(candidate), source


class StaticImportLoader:
    """Serve imported templates from an in-memory mapping of path to source.

    Keys are normalized POSIX paths relative to a virtual root, so
    ``"./shared/footer.echo"`` and ``"shared/footer.echo"`` are the same
    document.
    """

    def __init__(self, documents: Mapping[str, str]) -> None:
        self._documents = {posixpath.normpath(k): v for k, v in documents.items()}

    def load(self, path: str, *, relative_to: str | None = None) -> tuple[str, str]:
        _check_import_path(path)
        base = posixpath.dirname(relative_to) if relative_to else ""
        key = posixpath.normpath(posixpath.join(base, path))
        if key.startswith(".."):
            raise EvaluationError(f"Import path escapes the import root: {path}")
        for candidate in (key, key + TEMPLATE_EXTENSION):
            if candidate in self._documents:
                return candidate, self._documents[candidate]
        raise EvaluationError(f"Import not found: {path}")
