"""
Bulk Mutator
============

Applies move / copy / restore / import / delete / patch operations to a set
of widgets against the remote canvas.

Create-type operations (copy, restore, import) resolve dependencies by
repeated sweeps:

- a widget whose parent is in the same set is created after its parent
- a connector is created only after both of its endpoints, and only when
  both endpoints belong to the set

Each sweep decides readiness against the identity map as it stood when the
sweep began, then submits every ready widget concurrently. A widget never
sees the new id of a sibling created in the same sweep.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from .progress import ProgressEvent, ProgressSink, log_progress
from .transform import transform
from ..models.errors import UnsupportedWidgetTypeError
from ..models.macro_models import MutationResult
from ..models.widget_models import BoundingBox, Widget, WidgetPatch, WidgetType
from ..services.canvas_client import CanvasAPIError, CanvasClient

logger = logging.getLogger(__name__)

MAX_SWEEPS = 1000
DEFAULT_CONCURRENCY = 8


def endpoint_ids(widget: Widget) -> Tuple[Optional[str], Optional[str]]:
    src_id = widget.src.id if widget.src else None
    dst_id = widget.dst.id if widget.dst else None
    return src_id, dst_id


def can_process(widget: Widget, candidates: Dict[str, Widget], resolved: Dict[str, str]) -> bool:
    """Whether every in-set dependency of the widget already has a new id."""
    if widget.is_connector:
        src_id, dst_id = endpoint_ids(widget)
        if not src_id or not dst_id:
            return False
        if src_id not in candidates or dst_id not in candidates:
            return False
        if src_id not in resolved or dst_id not in resolved:
            return False
    if not widget.parent_id or widget.parent_id not in candidates:
        return True
    return widget.parent_id in resolved


def build_create_payload(
    widget: Widget,
    candidates: Dict[str, Widget],
    resolved: Dict[str, str],
    source: Optional[BoundingBox] = None,
    target: Optional[BoundingBox] = None
) -> Dict:
    """Clone a widget into a create payload with ids rewritten to the new ones."""
    clone = widget.model_copy(deep=True)

    if clone.is_connector:
        src_id, dst_id = endpoint_ids(widget)
        clone.src.id = resolved[src_id]
        clone.dst.id = resolved[dst_id]
    elif clone.location is not None and source is not None and target is not None:
        clone = transform(clone, source, target)

    payload = clone.to_payload()
    if widget.parent_id:
        if widget.parent_id in candidates:
            payload["parent_id"] = resolved[widget.parent_id]
        else:
            payload.pop("parent_id", None)
    if clone.auto_text_color is True:
        payload.pop("text_color", None)
    return payload


class BulkMutator:
    """Runs bulk widget operations with per-widget failure isolation."""

    def __init__(
        self,
        client: CanvasClient,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_sweeps: int = MAX_SWEEPS
    ):
        self.client = client
        self.concurrency = max(1, concurrency)
        self.max_sweeps = max_sweeps

    # ------------------------------------------------------------------
    # Create-type operations
    # ------------------------------------------------------------------

    async def copy(
        self,
        widgets: List[Widget],
        source: BoundingBox,
        target: BoundingBox,
        progress: ProgressSink = log_progress
    ) -> MutationResult:
        return await self._create_in_order("copy", widgets, source, target, progress)

    async def restore(
        self,
        widgets: List[Widget],
        source: BoundingBox,
        target: BoundingBox,
        progress: ProgressSink = log_progress
    ) -> MutationResult:
        return await self._create_in_order("restore", widgets, source, target, progress)

    async def import_widgets(
        self,
        widgets: List[Widget],
        source: Optional[BoundingBox] = None,
        target: Optional[BoundingBox] = None,
        progress: ProgressSink = log_progress
    ) -> MutationResult:
        return await self._create_in_order("import", widgets, source, target, progress)

    async def _create_in_order(
        self,
        operation: str,
        widgets: List[Widget],
        source: Optional[BoundingBox],
        target: Optional[BoundingBox],
        progress: ProgressSink
    ) -> MutationResult:
        # Widgets without an id cannot be referenced, so any unique key will do
        keyed = [(w.id or f"#{index}", w) for index, w in enumerate(widgets)]
        candidates = {key: w for key, w in keyed}
        claimed: Set[str] = {w.id for w in widgets if w.id}
        resolved: Dict[str, str] = {}
        failed: List[str] = []
        total = len(keyed)
        sweeps = 0

        progress(ProgressEvent(operation=operation, stage="start", total=total))

        while sweeps < self.max_sweeps:
            done = set(resolved) | set(failed)
            pending = [(key, w) for key, w in keyed if key not in done]
            if not pending:
                break

            snapshot = dict(resolved)
            ready = [(key, w) for key, w in pending if can_process(w, candidates, snapshot)]
            if not ready:
                break
            sweeps += 1

            semaphore = asyncio.Semaphore(self.concurrency)
            outcomes = await asyncio.gather(*(
                self._create_one(operation, key, w, candidates, snapshot, source, target, claimed, semaphore)
                for key, w in ready
            ))

            for (key, w), new_id in zip(ready, outcomes):
                if new_id:
                    resolved[key] = new_id
                    progress(ProgressEvent(
                        operation=operation, stage="created", current=len(resolved),
                        total=total, widget_id=key, message=f"-> {new_id}"
                    ))
                else:
                    failed.append(key)
                    progress(ProgressEvent(
                        operation=operation, stage="failed", current=len(resolved),
                        total=total, widget_id=key
                    ))

        done = set(resolved) | set(failed)
        unresolved = [key for key, _ in keyed if key not in done]
        if unresolved:
            logger.warning(
                f"[MUTATOR] {operation}: {len(unresolved)} widget(s) have unsatisfiable "
                f"dependencies: {unresolved}"
            )

        logger.info(
            f"[MUTATOR-OK] {operation}: created={len(resolved)}, failed={len(failed)}, "
            f"unresolved={len(unresolved)}, sweeps={sweeps}"
        )
        progress(ProgressEvent(
            operation=operation, stage="done", current=len(resolved), total=total
        ))
        return MutationResult(
            processed=len(resolved),
            failed=failed,
            unresolved=unresolved,
            id_map=resolved,
            sweeps=sweeps
        )

    async def _create_one(
        self,
        operation: str,
        key: str,
        widget: Widget,
        candidates: Dict[str, Widget],
        resolved: Dict[str, str],
        source: Optional[BoundingBox],
        target: Optional[BoundingBox],
        claimed: Set[str],
        semaphore: asyncio.Semaphore
    ) -> Optional[str]:
        async with semaphore:
            try:
                kind = widget.kind
                payload = build_create_payload(widget, candidates, resolved, source, target)
                response = await self.client.create_widget(kind, payload)
            except (CanvasAPIError, UnsupportedWidgetTypeError) as e:
                logger.error(f"[MUTATOR-ERROR] {operation}: create failed for {key}: {e}")
                return None

            new_id = response.get("id")
            if new_id:
                claimed.add(new_id)
                return new_id

            logger.warning(f"[MUTATOR] {operation}: create response for {key} has no id, looking it up")
            return await self._recover_id(kind, payload, claimed)

    async def _recover_id(self, kind: WidgetType, payload: Dict, claimed: Set[str]) -> Optional[str]:
        """
        Find a freshly created widget by (title, text).

        Ids that belonged to the source set or were already matched are
        skipped. With several candidates the last listed one is taken.
        """
        try:
            listing = await self.client.list_collection(kind)
        except CanvasAPIError as e:
            logger.error(f"[MUTATOR-ERROR] id lookup listing failed: {e.message}")
            return None

        title, text = payload.get("title"), payload.get("text")
        matches = [
            w.id for w in listing
            if w.id and w.id not in claimed and w.title == title and w.text == text
        ]
        if not matches:
            logger.error(f"[MUTATOR-ERROR] No {kind.value} matches title={title!r} text={text!r}")
            return None
        if len(matches) > 1:
            logger.warning(
                f"[MUTATOR] {len(matches)} {kind.value} widgets match title={title!r}; "
                f"taking the newest ({matches[-1]})"
            )
        new_id = matches[-1]
        claimed.add(new_id)
        return new_id

    # ------------------------------------------------------------------
    # In-place operations
    # ------------------------------------------------------------------

    async def move(
        self,
        widgets: List[Widget],
        source: BoundingBox,
        target: BoundingBox,
        progress: ProgressSink = log_progress
    ) -> MutationResult:
        """Patch location and scale of every positioned widget; ids never change."""
        patches = []
        for w in widgets:
            # Connectors follow their endpoints
            if w.is_connector or w.location is None:
                continue
            moved = transform(w, source, target)
            patches.append(WidgetPatch(
                widget=w,
                fields={"location": moved.location.model_dump(), "scale": moved.scale}
            ))
        return await self.patch_many("move", patches, progress)

    async def patch_many(
        self,
        operation: str,
        patches: List[WidgetPatch],
        progress: ProgressSink = log_progress
    ) -> MutationResult:
        """Apply independent partial updates."""
        total = len(patches)
        progress(ProgressEvent(operation=operation, stage="start", total=total))
        semaphore = asyncio.Semaphore(self.concurrency)
        done = 0

        async def patch_one(patch: WidgetPatch) -> bool:
            nonlocal done
            async with semaphore:
                try:
                    await self.client.update_widget(patch.widget.kind, patch.widget.id, patch.fields)
                except (CanvasAPIError, UnsupportedWidgetTypeError) as e:
                    logger.error(f"[MUTATOR-ERROR] {operation}: patch failed for {patch.widget.id}: {e}")
                    return False
                done += 1
                progress(ProgressEvent(
                    operation=operation, stage="patched", current=done,
                    total=total, widget_id=patch.widget.id
                ))
                return True

        outcomes = await asyncio.gather(*(patch_one(p) for p in patches))
        failed = [p.widget.id for p, ok in zip(patches, outcomes) if not ok]
        logger.info(f"[MUTATOR-OK] {operation}: patched={total - len(failed)}, failed={len(failed)}")
        progress(ProgressEvent(operation=operation, stage="done", current=total - len(failed), total=total))
        return MutationResult(processed=total - len(failed), failed=failed)

    async def delete(
        self,
        widgets: List[Widget],
        progress: ProgressSink = log_progress
    ) -> MutationResult:
        """Best-effort delete; failures are logged and excluded from the count."""
        total = len(widgets)
        progress(ProgressEvent(operation="delete", stage="start", total=total))
        semaphore = asyncio.Semaphore(self.concurrency)
        done = 0

        async def delete_one(widget: Widget) -> bool:
            nonlocal done
            async with semaphore:
                try:
                    await self.client.delete_widget(widget.kind, widget.id)
                except (CanvasAPIError, UnsupportedWidgetTypeError) as e:
                    logger.error(f"[MUTATOR-ERROR] delete failed for {widget.id}: {e}")
                    return False
                done += 1
                progress(ProgressEvent(
                    operation="delete", stage="deleted", current=done,
                    total=total, widget_id=widget.id
                ))
                return True

        outcomes = await asyncio.gather(*(delete_one(w) for w in widgets))
        failed = [w.id for w, ok in zip(widgets, outcomes) if not ok]
        logger.info(f"[MUTATOR-OK] delete: removed={total - len(failed)}, failed={len(failed)}")
        progress(ProgressEvent(operation="delete", stage="done", current=total - len(failed), total=total))
        return MutationResult(processed=total - len(failed), failed=failed)
