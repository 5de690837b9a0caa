from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence

from herdwatch.schemas.analysis import BBox, BehaviorEvent, Detection

LYING_HEIGHT_RATIO = 0.7
FIGHTING_OVERLAP_RATIO = 0.1
FIGHTING_DISTANCE_PX = 50.0
# heuristic, not a calibrated probability
FIGHTING_CONFIDENCE = 0.8

ABNORMAL_BEHAVIORS = frozenset({"lying", "fighting"})

BEHAVIOR_MESSAGES: dict[str, str] = {
    "lying": "{count} cattle detected lying down",
    "fighting": "{count} pairs of cattle detected fighting",
}


def behavior_message(behavior: str, count: int) -> str:
    template = BEHAVIOR_MESSAGES.get(behavior, "{count} cattle detected " + behavior)
    return template.format(count=count)


def _area(box: BBox) -> float:
    x1, y1, x2, y2 = box
    return max(0.0, x2 - x1) * max(0.0, y2 - y1)


def overlap_ratio(a: BBox, b: BBox) -> float:
    """Intersection area over the smaller box's area."""
    ix = max(0.0, min(a[2], b[2]) - max(a[0], b[0]))
    iy = max(0.0, min(a[3], b[3]) - max(a[1], b[1]))
    smaller = min(_area(a), _area(b))
    if smaller <= 0:
        return 0.0
    return (ix * iy) / smaller


def center_distance(a: BBox, b: BBox) -> float:
    acx, acy = (a[0] + a[2]) / 2.0, (a[1] + a[3]) / 2.0
    bcx, bcy = (b[0] + b[2]) / 2.0, (b[1] + b[3]) / 2.0
    return math.hypot(bcx - acx, bcy - acy)


def is_lying(box: BBox) -> bool:
    width = box[2] - box[0]
    height = box[3] - box[1]
    return height < width * LYING_HEIGHT_RATIO


def is_fighting(a: BBox, b: BBox) -> bool:
    return overlap_ratio(a, b) > FIGHTING_OVERLAP_RATIO or center_distance(a, b) < FIGHTING_DISTANCE_PX


def _pairs(items: Sequence[Detection]) -> Iterable[tuple[Detection, Detection]]:
    for i in range(len(items)):
        for j in range(i + 1, len(items)):
            yield items[i], items[j]


def detect_behaviors(
    detections: Sequence[Detection],
    subject_classes: Iterable[str] = ("cow",),
) -> list[BehaviorEvent]:
    wanted = set(subject_classes)
    by_class: dict[str, list[Detection]] = defaultdict(list)
    for det in detections:
        if det.class_name in wanted:
            by_class[det.class_name].append(det)

    subjects = [det for group in by_class.values() for det in group]
    events: list[BehaviorEvent] = []

    lying = [det for det in subjects if is_lying(det.bbox)]
    if lying:
        events.append(
            BehaviorEvent(
                type="lying",
                count=len(lying),
                average_confidence=sum(det.confidence for det in lying) / len(lying),
                message=behavior_message("lying", len(lying)),
            )
        )

    fighting_pairs = 0
    for group in by_class.values():
        fighting_pairs += sum(1 for a, b in _pairs(group) if is_fighting(a.bbox, b.bbox))
    if fighting_pairs:
        events.append(
            BehaviorEvent(
                type="fighting",
                count=fighting_pairs,
                average_confidence=FIGHTING_CONFIDENCE,
                message=behavior_message("fighting", fighting_pairs),
            )
        )

    return events
