"""Registry of the time sources polled on every refresh cycle."""

from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

import json
import logging

from pydantic import ValidationError

from .models import TimeSourceModel

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when the source list cannot be loaded or is invalid."""


@dataclass(frozen=True)
class TimeSource:
    """A named time source.

    Attributes:
        name: Display key, unique within a registry.
        host: Host identifier queried on the standard NTP port.
    """

    name: str
    host: str

    @property
    def address(self) -> str:
        return self.host


class SourceRegistry:
    """Ordered, immutable collection of time sources."""

    def __init__(self, sources: Iterable[TimeSource] = ()) -> None:
        self._sources = tuple(sources)
        seen: set[str] = set()
        for source in self._sources:
            if source.name in seen:
                raise ConfigurationError(f"Duplicate source name: {source.name}")
            seen.add(source.name)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "SourceRegistry":
        """Build a registry from `{name, host}` records."""

        sources: list[TimeSource] = []
        for index, record in enumerate(records):
            if not isinstance(record, Mapping):
                raise ConfigurationError(f"Source #{index} is not an object")
            try:
                model = TimeSourceModel.model_validate(record)
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid source #{index}: {exc}") from exc
            sources.append(TimeSource(name=model.name, host=model.host))
        return cls(sources)

    @classmethod
    def from_json(cls, path: str | Path) -> "SourceRegistry":
        """Load the JSON array format used by `ntp_servers.json`."""

        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Cannot read source list {path}: {exc}") from exc
        return cls._from_document(data, str(path))

    @classmethod
    def default(cls) -> "SourceRegistry":
        """Load the source list bundled with the package."""

        text = resources.files("ntp_diff_show").joinpath("data/ntp_servers.json").read_text(encoding="utf-8")
        return cls._from_document(json.loads(text), "bundled ntp_servers.json")

    @classmethod
    def _from_document(cls, data: Any, origin: str) -> "SourceRegistry":
        if not isinstance(data, list):
            raise ConfigurationError(f"Source list {origin} must be a JSON array")
        registry = cls.from_records(data)
        logger.info("sources_loaded", extra={"origin": origin, "count": len(registry)})
        return registry

    @property
    def sources(self) -> tuple[TimeSource, ...]:
        return self._sources

    @property
    def is_empty(self) -> bool:
        return not self._sources

    def __iter__(self) -> Iterator[TimeSource]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)


def load_registry(sources_path: str | Path | None) -> SourceRegistry:
    """Load the configured source list, falling back to the bundled one."""

    if sources_path is None:
        return SourceRegistry.default()
    return SourceRegistry.from_json(sources_path)
