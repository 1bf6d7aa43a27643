"""Animation weaving: symbol, tapestry and per-object interaction frames for a room.

Used by the creation wizard once a room is finished and by ``regenerate``.
Each art call is independent; a failed call is logged and skipped. Object
calls run concurrently on a small thread pool while every database write stays
on the calling thread (and thus on its session).
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from castaway import db
from castaway.logging_utils import get_logger
from castaway.models.enums import AnimationType
from castaway.models.models import Animation, Room
from castaway.services import repository as repo
from castaway.services.art_service import ArtClient, ArtServiceError

log = get_logger("art")

FALLBACK_SYMBOL = "📍"
MAX_WORKERS = 4


@dataclass
class WeaveReport:
    symbol: str = FALLBACK_SYMBOL
    tapestry: Optional[Animation] = None
    interactions: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def generated(self) -> bool:
        return self.tapestry is not None or self.interactions > 0


def weave_room(art: ArtClient, room: Room, mood: str, fps: int = 2) -> WeaveReport:
    report = WeaveReport()
    room_payload = room.to_dict()

    try:
        symbol = art.room_symbol(room_payload, mood)
        if symbol:
            report.symbol = symbol
    except ArtServiceError as exc:
        report.failures.append("symbol")
        log.warn(event="symbol_failed", room_id=room.id, error=str(exc))
    repo.set_room_symbol(room, report.symbol)

    try:
        frames = art.room_tapestry(room_payload, mood)
        if frames:
            report.tapestry = repo.create_animation(frames, AnimationType.TAPESTRY, room_id=room.id, fps=fps)
    except ArtServiceError as exc:
        report.failures.append("tapestry")
        log.warn(event="tapestry_failed", room_id=room.id, error=str(exc))

    items = [i.to_dict() for i in repo.room_items(room.id, room.server_code)]
    if items:
        with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(items))) as pool:
            futures = {pool.submit(art.object_interaction, item): item for item in items}
            for future in as_completed(futures):
                item = futures[future]
                try:
                    frames = future.result()
                except ArtServiceError as exc:
                    report.failures.append(f"item:{item['id']}")
                    log.warn(event="interaction_failed", item_id=item["id"], error=str(exc))
                    continue
                if not frames:
                    continue
                try:
                    repo.create_animation(
                        frames,
                        AnimationType.INTERACTION,
                        room_id=room.id,
                        object_id=item["id"],
                        fps=fps,
                    )
                except SQLAlchemyError as exc:
                    # Object deleted while its art was in flight
                    db.session.rollback()
                    report.failures.append(f"item:{item['id']}")
                    log.warn(event="interaction_store_failed", item_id=item["id"], error=str(exc))
                    continue
                report.interactions += 1

    log.info(
        event="weave_done",
        room_id=room.id,
        mood=mood,
        tapestry=report.tapestry is not None,
        interactions=report.interactions,
        failures=len(report.failures),
    )
    return report
