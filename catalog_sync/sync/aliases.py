"""Manual category alias table.

Maps names or slugs used by the scraped feed onto canonical category slugs
for the cases name and slug matching cannot place. The table is catalog
data and lives in a JSON file.
"""

import json
from pathlib import Path

import structlog

from catalog_sync.sync.slugs import normalize_text

logger = structlog.get_logger()


class CategoryAliases:
    """Case-insensitive alias lookup."""

    def __init__(self, aliases: dict[str, str] | None = None) -> None:
        self._aliases = {
            normalize_text(key): value.strip()
            for key, value in (aliases or {}).items()
            if normalize_text(key) and value and value.strip()
        }

    @classmethod
    def from_file(cls, path: str | Path | None) -> "CategoryAliases":
        """Load aliases from a JSON object file.

        A missing path or file yields an empty table. Invalid JSON raises.
        """
        if not path:
            return cls()
        file_path = Path(path)
        if not file_path.exists():
            logger.info("No category alias file", path=str(file_path))
            return cls()
        data = json.loads(file_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Category alias file must hold a JSON object: {file_path}")
        aliases = cls({str(k): str(v) for k, v in data.items()})
        logger.info("Loaded category aliases", path=str(file_path), count=len(aliases))
        return aliases

    def resolve(self, name: str | None) -> str | None:
        """Return the canonical slug for a name or slug, if aliased."""
        return self._aliases.get(normalize_text(name))

    def __len__(self) -> int:
        return len(self._aliases)
