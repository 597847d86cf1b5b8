"""Index lifecycle: monthly partition rotation behind a stable alias.

Readers and writers only ever address the alias. Each month a new
partition named ``{alias}-{yyyyMM}`` becomes the single write index and the
oldest partitions are dropped from the alias (not deleted) once more than
the retention window are attached.

Rotation is a guarded state machine:

    PENDING -> PARTITION_CREATED -> MEMBER_BOUND -> WRITE_CUTOVER -> RETAINED
    PENDING -> ALREADY_CURRENT

Any step that is not acknowledged moves the rotation to FAILED and raises
:class:`IndexLifecycleError` naming the step. The write cutover is a single
multi-action alias update and always runs before retention, so the alias is
never observed without a write index.

Rotation is not coordinated across processes; run it from one place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from embedcache.exceptions import CacheStoreError, IndexLifecycleError
from embedcache.models import AliasMember
from embedcache.storage.base import CACHE_INDEX_MAPPINGS, cache_index_settings

if TYPE_CHECKING:
    from collections.abc import Callable

    from embedcache.storage.base import DocumentStore

logger = logging.getLogger(__name__)


class RotationState(Enum):
    """States of a single rotation run."""

    PENDING = "pending"
    ALREADY_CURRENT = "already_current"
    PARTITION_CREATED = "partition_created"
    MEMBER_BOUND = "member_bound"
    WRITE_CUTOVER = "write_cutover"
    RETAINED = "retained"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[RotationState, frozenset[RotationState]] = {
    RotationState.PENDING: frozenset(
        {RotationState.ALREADY_CURRENT, RotationState.PARTITION_CREATED, RotationState.FAILED}
    ),
    RotationState.PARTITION_CREATED: frozenset({RotationState.MEMBER_BOUND, RotationState.FAILED}),
    RotationState.MEMBER_BOUND: frozenset({RotationState.WRITE_CUTOVER, RotationState.FAILED}),
    RotationState.WRITE_CUTOVER: frozenset({RotationState.RETAINED, RotationState.FAILED}),
}


@dataclass(frozen=True)
class RetentionPolicy:
    """How many monthly partitions stay attached to the alias."""

    keep: int = 3
    exempt_suffix: str = "base"

    def __post_init__(self) -> None:
        if self.keep < 1:
            raise ValueError("retention keep-count must be at least 1")

    def is_exempt(self, index: str) -> bool:
        return index.endswith(self.exempt_suffix)


@dataclass
class RotationResult:
    """Outcome of a rotation run."""

    alias: str
    index: str
    state: RotationState = RotationState.PENDING
    last_good_state: RotationState = RotationState.PENDING
    failed_step: str | None = None
    removed: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.state in (RotationState.RETAINED, RotationState.ALREADY_CURRENT)

    def advance(self, new_state: RotationState) -> None:
        """Move to ``new_state`` if the transition is allowed.

        Raises:
            RuntimeError: If the transition is not allowed from the current state
        """
        allowed = _ALLOWED_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(f"Illegal rotation transition {self.state.name} -> {new_state.name}")
        if new_state != RotationState.FAILED:
            self.last_good_state = new_state
        self.state = new_state
        if new_state in (RotationState.RETAINED, RotationState.ALREADY_CURRENT, RotationState.FAILED):
            self.finished_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "alias": self.alias,
            "index": self.index,
            "state": self.state.value,
            "last_good_state": self.last_good_state.value,
            "failed_step": self.failed_step,
            "removed": list(self.removed),
            "succeeded": self.succeeded,
        }


class IndexLifecycleManager:
    """Keeps an alias bound to a bounded set of monthly partitions."""

    def __init__(
        self,
        store: DocumentStore,
        alias: str,
        retention: RetentionPolicy | None = None,
        timezone: str = "Asia/Seoul",
        mappings: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize lifecycle manager.

        Args:
            store: Document store holding the partitions
            alias: Alias readers and writers use
            retention: Retention window (defaults to 3 months, "base" exempt)
            timezone: Zone in which the partition month is computed
            mappings: Index mappings for new partitions
            settings: Index settings for new partitions
            clock: Returns the current time (injectable for tests)
        """
        if not alias:
            raise ValueError("alias must not be empty")
        self.store = store
        self.alias = alias
        self.retention = retention or RetentionPolicy()
        self.zone = ZoneInfo(timezone)
        self.mappings = mappings if mappings is not None else CACHE_INDEX_MAPPINGS
        self.settings = settings if settings is not None else cache_index_settings()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.last_result: RotationResult | None = None

    def partition_name(self, now: datetime | None = None) -> str:
        """Name of the partition for the month containing ``now``."""
        moment = (now or self._clock()).astimezone(self.zone)
        return f"{self.alias}-{moment:%Y%m}"

    async def ensure_initialized(self) -> str | None:
        """Create and bind the first partition if the alias resolves to nothing.

        Returns:
            Name of the partition bound as write index, or None if the alias
            already existed

        Raises:
            IndexLifecycleError: If creation or binding is not acknowledged
        """
        if await self._step("exists", self.store.exists(self.alias)):
            logger.debug(f"Alias {self.alias} already exists")
            return None

        index = self.partition_name()
        if not await self._step("exists", self.store.exists(index), index):
            created = await self._step(
                "create_partition",
                self.store.create_partition(index, self.mappings, self.settings),
                index,
            )
            if not created:
                raise IndexLifecycleError(
                    f"Index creation not acknowledged: {index}", step="create_partition", index=index, alias=self.alias
                )

        bound = await self._step("bind_alias", self.store.bind_alias(index, self.alias, True), index)
        if not bound:
            raise IndexLifecycleError(
                f"Alias binding not acknowledged: {self.alias} -> {index}",
                step="bind_alias",
                index=index,
                alias=self.alias,
            )

        logger.info(f"✅ Initialized alias {self.alias} with write index {index}")
        return index

    async def rotate(self) -> RotationResult:
        """Roll the alias over to the current month's partition.

        Returns:
            RotationResult in state RETAINED, or ALREADY_CURRENT when the
            partition for this month already exists

        Raises:
            IndexLifecycleError: If any step fails; ``last_result`` records
                how far the rotation got
        """
        index = self.partition_name()
        result = RotationResult(alias=self.alias, index=index)
        self.last_result = result
        logger.info(f"Rotating alias {self.alias} to {index}")

        try:
            if await self._step("exists", self.store.exists(index), index):
                result.advance(RotationState.ALREADY_CURRENT)
                logger.info(f"Partition {index} already exists, rotation already done")
                return result

            await self._create_partition(index, result)
            await self._bind_member(index, result)
            await self._cutover(index, result)
            result.removed = await self._retain(index, result)
        except IndexLifecycleError as e:
            result.failed_step = e.step
            result.advance(RotationState.FAILED)
            logger.error(
                f"❌ Rotation of {self.alias} failed at {e.step} "
                f"(last good state: {result.last_good_state.name}): {e}"
            )
            raise

        logger.info(
            f"✅ Rotated alias {self.alias} to {index}"
            + (f", removed {', '.join(result.removed)}" if result.removed else "")
        )
        return result

    async def apply_retention(self) -> list[str]:
        """Detach the oldest non-exempt partitions beyond the retention window.

        Returns:
            Names removed from the alias (data stays in the partitions)

        Raises:
            IndexLifecycleError: If removal fails or would detach the write index
        """
        members = await self._step("retention", self.store.list_alias_members(self.alias))
        candidates = sorted(m.index for m in members if not self.retention.is_exempt(m.index))
        if len(candidates) <= self.retention.keep:
            return []

        to_remove = candidates[: len(candidates) - self.retention.keep]
        writers = {m.index for m in members if m.is_write_index}
        if writers & set(to_remove):
            raise IndexLifecycleError(
                f"Retention would detach write index {sorted(writers & set(to_remove))} from {self.alias}",
                step="retention",
                alias=self.alias,
            )

        removed = await self._step("retention", self.store.remove_from_alias(to_remove, self.alias))
        if not removed:
            raise IndexLifecycleError(
                f"Alias removal not acknowledged for {to_remove}", step="retention", alias=self.alias
            )

        logger.info(f"Retention removed {len(to_remove)} partitions from {self.alias}: {to_remove}")
        return to_remove

    async def _create_partition(self, index: str, result: RotationResult) -> None:
        created = await self._step(
            "create_partition",
            self.store.create_partition(index, self.mappings, self.settings),
            index,
        )
        if not created:
            raise IndexLifecycleError(
                f"Index creation not acknowledged: {index}", step="create_partition", index=index, alias=self.alias
            )
        result.advance(RotationState.PARTITION_CREATED)

    async def _bind_member(self, index: str, result: RotationResult) -> None:
        bound = await self._step("bind_alias", self.store.bind_alias(index, self.alias, False), index)
        if not bound:
            raise IndexLifecycleError(
                f"Alias addition not acknowledged: {index}", step="bind_alias", index=index, alias=self.alias
            )
        result.advance(RotationState.MEMBER_BOUND)

    async def _cutover(self, index: str, result: RotationResult) -> None:
        members = await self._step("write_cutover", self.store.list_alias_members(self.alias), index)
        if index not in {m.index for m in members}:
            raise IndexLifecycleError(
                f"Partition {index} is not a member of {self.alias}", step="write_cutover", index=index, alias=self.alias
            )

        flagged = [AliasMember(index=m.index, is_write_index=m.index == index) for m in members]
        updated = await self._step("write_cutover", self.store.update_write_target(self.alias, flagged), index)
        if not updated:
            raise IndexLifecycleError(
                f"Alias update not acknowledged: {self.alias}", step="write_cutover", index=index, alias=self.alias
            )
        result.advance(RotationState.WRITE_CUTOVER)

    async def _retain(self, index: str, result: RotationResult) -> list[str]:
        removed = await self.apply_retention()
        result.advance(RotationState.RETAINED)
        return removed

    async def _step(self, step: str, awaitable: Any, index: str | None = None) -> Any:
        """Await a store call, converting store failures into lifecycle errors."""
        try:
            return await awaitable
        except IndexLifecycleError:
            raise
        except CacheStoreError as e:
            raise IndexLifecycleError(
                f"{step} failed for {index or self.alias}: {e}", step=step, index=index, alias=self.alias
            ) from e
