"""Locale-keyed class label tables.

The vocabulary itself is external data: one ``<locale>.json`` file per
language, holding either a JSON list of class names or an object keyed by
class index (``{"0": "tench", "1": "goldfish", ...}``).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from efficientnetx.errors import UnsupportedLocaleError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = logging.getLogger(__name__)


class LabelVocabulary:
    """Maps class indices to names, per locale."""

    def __init__(self, tables: Mapping[str, Sequence[str]]) -> None:
        self._tables: dict[str, tuple[str, ...]] = {locale: tuple(names) for locale, names in tables.items()}

    @classmethod
    def from_directory(cls, directory: str | Path) -> LabelVocabulary:
        """Load every ``<locale>.json`` table found in ``directory``.

        A missing directory yields an empty vocabulary (every locale unsupported).
        """
        root = Path(directory)
        tables: dict[str, list[str]] = {}
        if not root.is_dir():
            logger.warning("Labels directory %s does not exist", root)
            return cls(tables)

        for path in sorted(root.glob("*.json")):
            tables[path.stem] = _parse_table(json.loads(path.read_text(encoding="utf-8")), path)
            logger.info("Loaded %d labels for locale %r", len(tables[path.stem]), path.stem)
        return cls(tables)

    @property
    def locales(self) -> list[str]:
        return sorted(self._tables)

    def labels_for(self, locale: str) -> tuple[str, ...]:
        """Return the label table for ``locale``.

        Raises:
            UnsupportedLocaleError: If no table exists for ``locale``. There is
                no fallback to another locale.
        """
        try:
            return self._tables[locale]
        except KeyError:
            raise UnsupportedLocaleError(
                f"Unsupported locale: {locale!r} (available: {', '.join(self.locales) or 'none'})"
            ) from None


def _parse_table(data: object, path: Path) -> list[str]:
    if isinstance(data, list):
        return [str(name) for name in data]
    if isinstance(data, dict):
        indexed = {int(key): str(name) for key, name in data.items()}
        if sorted(indexed) != list(range(len(indexed))):
            raise ValueError(f"{path}: class indices must be contiguous from 0")
        return [indexed[i] for i in range(len(indexed))]
    raise ValueError(f"{path}: expected a JSON list or object, got {type(data).__name__}")
