"""Address/coordinates -> water utility -> safety tier orchestration."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import date
from typing import Any, AsyncIterator, Callable, Hashable, Protocol, TypeVar

from tapwater.common.cancellation import CancelToken
from tapwater.common.errors import (
    STAGE_FAILURES,
    ResolutionCancelled,
    ResolutionError,
    ServiceUnavailable,
)
from tapwater.common.ids import generate_request_id
from tapwater.common.logging import get_logger, log_event
from tapwater.common.models import (
    AddressQuery,
    CoordinateQuery,
    Coordinates,
    Failure,
    Loading,
    LocationQuery,
    PipelineResult,
    SafetyTier,
    Stage,
    Success,
    UtilityMatch,
    ViolationRecord,
)
from tapwater.common.time_utils import utc_today
from tapwater.pipeline.cache import StageCache

T = TypeVar("T")

StageListener = Callable[[Stage, Any], None]


class Geocoder(Protocol):
    def resolve_address(self, address: str, cancel_token: CancelToken | None = None) -> Coordinates: ...


class UtilityResolver(Protocol):
    def resolve_utility(self, coords: Coordinates, cancel_token: CancelToken | None = None) -> UtilityMatch: ...


class Classifier(Protocol):
    def classify(self, system_id: str, as_of: date | None = None) -> SafetyTier: ...


class ViolationSource(Protocol):
    def violations_for(self, system_id: str, limit: int = ...) -> list[ViolationRecord]: ...


class ResolutionPipeline:
    """
    Resolve a location to its water utility and that utility's safety tier.

    Stages run one after another because each needs the previous stage's
    output. Blocking work runs on worker threads so several resolutions can
    share one event loop. Every stage result is cached by its own input key;
    a cancelled or timed-out stage never writes to the cache.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        resolver: UtilityResolver,
        classifier: Classifier,
        *,
        violations: ViolationSource | None = None,
        cache: StageCache | None = None,
        stage_timeout: float | None = None,
        page_size: int = 50,
        logger: logging.Logger | None = None,
    ) -> None:
        self.geocoder = geocoder
        self.resolver = resolver
        self.classifier = classifier
        self.violation_source = violations
        self.cache = cache if cache is not None else StageCache()
        self.stage_timeout = stage_timeout
        self.page_size = page_size
        self.logger = logger or get_logger("pipeline")
        self._latest: CancelToken | None = None

    # ── Individual stages ─────────────────────────────────────────

    async def geocode(
        self,
        address: str,
        *,
        cancel_token: CancelToken | None = None,
        request_id: str | None = None,
    ) -> Coordinates:
        # Exact string key: no case folding or whitespace normalisation.
        return await self._run_stage(
            Stage.GEOCODER,
            address,
            lambda token: self.geocoder.resolve_address(address, cancel_token=token),
            cancel_token=cancel_token,
            request_id=request_id,
        )

    async def locate(
        self,
        coords: Coordinates,
        *,
        cancel_token: CancelToken | None = None,
        request_id: str | None = None,
    ) -> UtilityMatch:
        return await self._run_stage(
            Stage.SPATIAL_RESOLVER,
            coords.key,
            lambda token: self.resolver.resolve_utility(coords, cancel_token=token),
            cancel_token=cancel_token,
            request_id=request_id,
        )

    async def classify(
        self,
        system_id: str,
        as_of: date | None = None,
        *,
        cancel_token: CancelToken | None = None,
        request_id: str | None = None,
    ) -> SafetyTier:
        as_of = as_of or utc_today()

        def _work(token: CancelToken) -> SafetyTier:
            token.raise_if_cancelled()
            return self.classifier.classify(system_id, as_of)

        return await self._run_stage(
            Stage.SAFETY_CLASSIFIER,
            (system_id, as_of.isoformat()),
            _work,
            cancel_token=cancel_token,
            request_id=request_id,
            system_id=system_id,
        )

    async def violations(self, system_id: str, limit: int | None = None) -> list[ViolationRecord]:
        if self.violation_source is None:
            raise RuntimeError("pipeline was built without a violation source")
        return await asyncio.to_thread(self.violation_source.violations_for, system_id, limit or self.page_size)

    # ── Whole resolution ──────────────────────────────────────────

    async def stream(
        self,
        query: LocationQuery,
        *,
        as_of: date | None = None,
        cancel_token: CancelToken | None = None,
        on_stage: StageListener | None = None,
    ) -> AsyncIterator[PipelineResult]:
        """Yield ``Loading`` before each stage, then one ``Success`` or ``Failure``."""
        token = cancel_token or CancelToken()
        request_id = generate_request_id()

        if isinstance(query, AddressQuery):
            yield Loading(Stage.GEOCODER)
            try:
                coords = await self.geocode(query.text, cancel_token=token, request_id=request_id)
            except STAGE_FAILURES as exc:
                yield Failure(Stage.GEOCODER, exc)
                return
            _notify(on_stage, Stage.GEOCODER, coords)
        elif isinstance(query, CoordinateQuery):
            coords = query.coordinates
        else:
            raise TypeError(f"Unsupported location query: {type(query).__name__}")

        yield Loading(Stage.SPATIAL_RESOLVER)
        try:
            utility = await self.locate(coords, cancel_token=token, request_id=request_id)
        except STAGE_FAILURES as exc:
            yield Failure(Stage.SPATIAL_RESOLVER, exc)
            return
        _notify(on_stage, Stage.SPATIAL_RESOLVER, utility)

        yield Loading(Stage.SAFETY_CLASSIFIER)
        try:
            tier = await self.classify(utility.system_id, as_of, cancel_token=token, request_id=request_id)
        except STAGE_FAILURES as exc:
            yield Failure(Stage.SAFETY_CLASSIFIER, exc)
            return
        _notify(on_stage, Stage.SAFETY_CLASSIFIER, tier)

        yield Success(utility=utility, tier=tier, coordinates=coords)

    async def resolve(
        self,
        query: LocationQuery,
        *,
        as_of: date | None = None,
        cancel_token: CancelToken | None = None,
        on_stage: StageListener | None = None,
    ) -> Success | Failure:
        result: PipelineResult = Loading()
        async for result in self.stream(query, as_of=as_of, cancel_token=cancel_token, on_stage=on_stage):
            pass
        if isinstance(result, Loading):
            raise RuntimeError("resolution ended without a result")
        return result

    async def resolve_latest(self, query: LocationQuery, **kwargs: Any) -> Success | Failure:
        """Resolve *query*, cancelling the previous resolution started here."""
        if self._latest is not None:
            self._latest.cancel("superseded by a newer request")
        token = CancelToken()
        self._latest = token
        try:
            return await self.resolve(query, cancel_token=token, **kwargs)
        finally:
            if self._latest is token:
                self._latest = None

    # ── Internals ─────────────────────────────────────────────────

    async def _run_stage(
        self,
        stage: Stage,
        key: Hashable,
        work: Callable[[CancelToken], T],
        *,
        cancel_token: CancelToken | None,
        request_id: str | None,
        system_id: str | None = None,
    ) -> T:
        fields = {"request_id": request_id, "stage": stage.value, "system_id": system_id}

        cached = self.cache.lookup(stage, key)
        if cached is not None:
            log_event(self.logger, "cache hit", level=logging.DEBUG, event="CACHE_HIT", status="ok", **fields)
            return cached.value

        token = cancel_token.child() if cancel_token is not None else CancelToken()
        token.raise_if_cancelled()
        started = time.monotonic()
        log_event(self.logger, "stage start", level=logging.DEBUG, event="STAGE_START", status="ok", **fields)

        try:
            call = asyncio.to_thread(work, token)
            if self.stage_timeout is not None:
                value = await asyncio.wait_for(call, self.stage_timeout)
            else:
                value = await call
        except asyncio.CancelledError:
            token.cancel("task cancelled")
            self._log_cancelled(fields)
            raise
        except asyncio.TimeoutError as exc:
            token.cancel("stage timed out")
            error = ServiceUnavailable(f"{stage.value} did not finish within {self.stage_timeout}s")
            self._fail(stage, key, error, started, fields)
            raise error from exc
        except ResolutionCancelled:
            self._log_cancelled(fields)
            raise
        except ResolutionError as exc:
            self._fail(stage, key, exc, started, fields)
            raise

        # Result of a call abandoned mid-flight is dropped, not cached.
        if token.cancelled:
            self._log_cancelled(fields)
            raise ResolutionCancelled(token.reason or "cancelled")

        self.cache.put(stage, key, value)
        if isinstance(value, UtilityMatch):
            fields["system_id"] = value.system_id
            fields["candidate_count"] = value.candidate_count
        log_event(
            self.logger,
            "stage end",
            event="STAGE_END",
            status="ok",
            duration_ms=_elapsed_ms(started),
            **fields,
        )
        return value

    def _fail(self, stage: Stage, key: Hashable, error: ResolutionError, started: float, fields: dict) -> None:
        self.cache.record_failure(stage, key, error)
        log_event(
            self.logger,
            f"stage failed: {error}",
            level=logging.WARNING,
            event="STAGE_FAIL",
            status="error",
            error_code=error.error_code,
            duration_ms=_elapsed_ms(started),
            **fields,
        )

    def _log_cancelled(self, fields: dict) -> None:
        log_event(self.logger, "resolution cancelled", event="RESOLUTION_CANCELLED", status="cancelled", **fields)


def _notify(listener: StageListener | None, stage: Stage, value: Any) -> None:
    if listener is not None:
        listener(stage, value)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
