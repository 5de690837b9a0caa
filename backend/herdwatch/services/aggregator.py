from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from herdwatch.detectors.behavior import ABNORMAL_BEHAVIORS, behavior_message
from herdwatch.schemas.analysis import AggregatedResult, BehaviorEvent, FrameResult, TaggedDetection


def _merge_behaviors(events: Sequence[BehaviorEvent]) -> list[BehaviorEvent]:
    counts: dict[str, int] = {}
    weighted: dict[str, float] = {}
    for ev in events:
        counts[ev.type] = counts.get(ev.type, 0) + ev.count
        weighted[ev.type] = weighted.get(ev.type, 0.0) + ev.average_confidence * ev.count

    merged: list[BehaviorEvent] = []
    for ev_type, count in counts.items():
        avg = weighted[ev_type] / count if count else 0.0
        merged.append(
            BehaviorEvent(
                type=ev_type,
                count=count,
                average_confidence=min(1.0, avg),
                message=behavior_message(ev_type, count),
            )
        )
    return merged


def aggregate(frame_results: Iterable[FrameResult], failed_frames: Iterable[int] = ()) -> AggregatedResult:
    frames = sorted(frame_results, key=lambda fr: fr.frame_index)

    detections = [
        TaggedDetection(**det.model_dump(), frame_index=fr.frame_index) for fr in frames for det in fr.detections
    ]
    average_confidence = sum(d.confidence for d in detections) / len(detections) if detections else 0.0

    all_events = [ev for fr in frames for ev in fr.behaviors]
    behavior_summary = dict(Counter(ev.type for ev in all_events))

    return AggregatedResult(
        detections=detections,
        average_confidence=average_confidence,
        total_processing_time_ms=sum(fr.processing_time_ms for fr in frames),
        behavior_summary=behavior_summary,
        behaviors=_merge_behaviors(all_events),
        has_abnormal_behavior=any(ev.type in ABNORMAL_BEHAVIORS and ev.count > 0 for ev in all_events),
        total_detections=len(detections),
        frames_analyzed=len(frames),
        failed_frames=sorted(failed_frames),
    )


def primary_count(result: AggregatedResult, primary_class: str) -> int:
    return sum(1 for det in result.detections if det.class_name == primary_class)
