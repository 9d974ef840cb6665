"""Wire configured collaborators into a resolution pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

from tapwater.common.config_loader import ServiceConfig
from tapwater.common.http import HttpClient
from tapwater.common.models import Stage
from tapwater.compliance.classifier import SafetyClassifier
from tapwater.compliance.store import ComplianceStore
from tapwater.geocode.census import CensusGeocoder
from tapwater.pipeline.cache import StageCache
from tapwater.pipeline.resolution import ResolutionPipeline
from tapwater.spatial.arcgis_resolver import ArcGisUtilityResolver


@dataclass
class LookupServices:
    pipeline: ResolutionPipeline
    http_client: HttpClient
    store: ComplianceStore
    owns_http_client: bool = True

    def close(self) -> None:
        self.store.close()
        if self.owns_http_client:
            self.http_client.close()

    def __enter__(self) -> "LookupServices":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def build_cache(config: ServiceConfig) -> StageCache:
    return StageCache(
        ttl_seconds={
            Stage.GEOCODER: config.cache.geocoder_ttl_seconds,
            Stage.SPATIAL_RESOLVER: config.cache.spatial_ttl_seconds,
            Stage.SAFETY_CLASSIFIER: config.cache.classifier_ttl_seconds,
        }
    )


def build_services(
    config: ServiceConfig,
    db_path: str | Path,
    *,
    http_client: HttpClient | None = None,
    stage_timeout: float | None = None,
    logger: logging.Logger | None = None,
) -> LookupServices:
    owns_client = http_client is None
    client = http_client or HttpClient(timeout=config.timeout, retry=config.retry)
    store = ComplianceStore(db_path)
    pipeline = ResolutionPipeline(
        CensusGeocoder(client, config.geocoder),
        ArcGisUtilityResolver(client, config.spatial),
        SafetyClassifier(store, lookback_years=config.compliance.lookback_years),
        violations=store,
        cache=build_cache(config),
        stage_timeout=stage_timeout,
        page_size=config.compliance.page_size,
        logger=logger,
    )
    return LookupServices(pipeline=pipeline, http_client=client, store=store, owns_http_client=owns_client)
