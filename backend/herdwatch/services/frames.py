from __future__ import annotations

import logging
from pathlib import Path

import cv2

logger = logging.getLogger(__name__)

VIDEO_SUFFIXES = {".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mkv"}


def is_video(path: str | Path) -> bool:
    return Path(path).suffix.lower() in VIDEO_SUFFIXES


def sample_indices(frame_count: int, samples: int) -> list[int]:
    """Evenly spaced frame indices, centred in each of ``samples`` equal spans."""
    if frame_count <= 0 or samples <= 0:
        return []
    samples = min(samples, frame_count)
    step = frame_count / samples
    return [min(frame_count - 1, int(step * i + step / 2)) for i in range(samples)]


def extract_frames(video_path: str | Path, out_dir: str | Path, samples: int) -> list[Path]:
    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        raise ValueError(f"cannot open video: {video_path}")

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    try:
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        for order, frame_idx in enumerate(sample_indices(frame_count, samples)):
            cap.set(cv2.CAP_PROP_POS_FRAMES, frame_idx)
            ok, frame = cap.read()
            if not ok:
                logger.warning("could not read frame %d of %s", frame_idx, video_path)
                continue
            target = out / f"frame_{order:04d}.jpg"
            if cv2.imwrite(str(target), frame):
                written.append(target)
    finally:
        cap.release()

    if not written:
        raise ValueError(f"no frames extracted from {video_path}")
    return written
