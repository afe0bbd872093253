"""Build the adapter registry handed to the fetch orchestrator."""

from __future__ import annotations

from permitbot.common.constants import DEFAULT_NOTES_LENGTH
from permitbot.common.errors import ConfigError
from permitbot.common.http import HttpClient
from permitbot.harvest.arcgis_harvest import ArcGISAdapter
from permitbot.harvest.base import SourceAdapter, SourceConfig
from permitbot.harvest.carto_harvest import CartoAdapter
from permitbot.harvest.socrata_harvest import SocrataAdapter

ADAPTER_FAMILIES: dict[str, type[SourceAdapter]] = {
    SocrataAdapter.family: SocrataAdapter,
    ArcGISAdapter.family: ArcGISAdapter,
    CartoAdapter.family: CartoAdapter,
}


def build_adapter(
    origin: str,
    source_cfg: dict,
    client: HttpClient,
    *,
    notes_max_length: int = DEFAULT_NOTES_LENGTH,
) -> SourceAdapter:
    source = SourceConfig.from_config(origin, source_cfg)
    adapter_cls = ADAPTER_FAMILIES.get(source.family)
    if adapter_cls is None:
        raise ConfigError(f"Unknown adapter family for {origin}: {source.family}")
    return adapter_cls(source, client, notes_max_length=notes_max_length)


def build_adapters(
    sources: dict[str, dict],
    client: HttpClient,
    *,
    notes_max_length: int = DEFAULT_NOTES_LENGTH,
) -> list[SourceAdapter]:
    adapters = []
    for origin, source_cfg in sources.items():
        if not source_cfg.get("enabled", True):
            continue
        adapters.append(build_adapter(origin, source_cfg, client, notes_max_length=notes_max_length))
    return adapters
