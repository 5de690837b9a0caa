from helpers import cow
from herdwatch.schemas.analysis import BehaviorEvent, Detection, FrameResult
from herdwatch.services.aggregator import aggregate, primary_count


def _lying(count: int, confidence: float) -> BehaviorEvent:
    return BehaviorEvent(type="lying", count=count, average_confidence=confidence, message="")


def test_average_confidence_over_all_detections() -> None:
    frames = [
        FrameResult(frame_index=1, detections=[cow(0, 0, 1, 1, 0.8), cow(0, 0, 1, 1, 0.7)], processing_time_ms=30),
        FrameResult(frame_index=0, detections=[cow(0, 0, 1, 1, 0.9)], processing_time_ms=20),
    ]

    result = aggregate(frames)

    assert abs(result.average_confidence - 0.8) < 1e-9
    assert result.total_processing_time_ms == 50
    assert result.total_detections == 3
    assert result.frames_analyzed == 2
    assert [d.frame_index for d in result.detections] == [0, 1, 1]


def test_empty_input_is_not_an_error() -> None:
    result = aggregate([])

    assert result.average_confidence == 0.0
    assert result.detections == []
    assert result.has_abnormal_behavior is False


def test_behaviors_are_summarised_and_merged() -> None:
    frames = [
        FrameResult(frame_index=0, behaviors=[_lying(1, 0.9)]),
        FrameResult(frame_index=1, behaviors=[_lying(3, 0.5)]),
    ]

    result = aggregate(frames, failed_frames=[3, 2])

    assert result.behavior_summary == {"lying": 2}
    assert len(result.behaviors) == 1
    merged = result.behaviors[0]
    assert merged.count == 4
    assert abs(merged.average_confidence - 0.6) < 1e-9
    assert merged.message == "4 cattle detected lying down"
    assert result.has_abnormal_behavior is True
    assert result.failed_frames == [2, 3]


def test_unknown_behavior_is_not_abnormal() -> None:
    frames = [
        FrameResult(
            frame_index=0,
            behaviors=[BehaviorEvent(type="grazing", count=2, average_confidence=0.9, message="")],
        )
    ]
    assert aggregate(frames).has_abnormal_behavior is False


def test_primary_count_filters_by_class() -> None:
    frames = [
        FrameResult(
            frame_index=0,
            detections=[cow(0, 0, 1, 1), Detection(class_name="dog", bbox=(0, 0, 1, 1), confidence=0.5)],
        )
    ]
    result = aggregate(frames)
    assert primary_count(result, "cow") == 1
    assert primary_count(result, "sheep") == 0
