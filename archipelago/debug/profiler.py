from __future__ import annotations

import json
import math
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

REPORT_TITLE = "Archipelago Streaming Report"
REPORT_PREFIX = "stream_report"


@dataclass
class _FrameState:
    kind: str
    start_time: float
    context: dict[str, Any] = field(default_factory=dict)
    section_totals_ms: dict[str, float] = field(default_factory=dict)


@dataclass
class Gauge:
    """Last and peak value of a sampled quantity such as queue depth or cache size."""

    last: float = 0.0
    peak: float = 0.0
    samples: int = 0

    def update(self, value: float) -> None:
        self.last = value
        self.peak = value if self.samples == 0 else max(self.peak, value)
        self.samples += 1


class RuntimeProfiler:
    """Frame and section timings, streaming counters and gauges.

    Counters may be bumped from worker threads; everything else is main-thread
    only. ``write_report()`` dumps a text and a JSON report on exit.
    """

    def __init__(self, enabled: bool = True, slow_frame_ms: float = 25.0, max_slow_frames: int = 400) -> None:
        self.enabled = enabled
        self.slow_frame_ms = slow_frame_ms
        self.section_samples_ms: dict[str, list[float]] = defaultdict(list)
        self.frame_samples_ms: dict[str, list[float]] = defaultdict(list)
        self.counters: dict[str, int] = defaultdict(int)
        self.gauges: dict[str, Gauge] = defaultdict(Gauge)
        self.slow_frames: deque[dict[str, Any]] = deque(maxlen=max_slow_frames)
        self._frame: _FrameState | None = None
        self._counter_lock = threading.Lock()

    def begin_frame(self, kind: str, context: dict[str, Any] | None = None) -> None:
        if not self.enabled:
            return
        if self._frame is not None:
            self.end_frame({"warning": "frame_auto_closed"})
        self._frame = _FrameState(kind, time.perf_counter(), dict(context or {}))

    def end_frame(self, extra_context: dict[str, Any] | None = None) -> None:
        """Close the current frame; frames slower than ``slow_frame_ms`` keep their context."""
        frame = self._frame
        if not self.enabled or frame is None:
            return
        self._frame = None

        total_ms = (time.perf_counter() - frame.start_time) * 1000.0
        self.frame_samples_ms[f"frame.{frame.kind}"].append(total_ms)
        if total_ms < self.slow_frame_ms:
            return

        context = {**frame.context, **(extra_context or {})}
        sections = sorted(frame.section_totals_ms.items(), key=lambda item: item[1], reverse=True)
        self.slow_frames.append({"kind": frame.kind, "total_ms": total_ms, "context": context, "sections_ms": dict(sections)})

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        if not self.enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_section_ms(name, (time.perf_counter() - start) * 1000.0)

    def record_section_ms(self, name: str, duration_ms: float) -> None:
        if not self.enabled:
            return
        self.section_samples_ms[name].append(duration_ms)
        if self._frame is not None:
            totals = self._frame.section_totals_ms
            totals[name] = totals.get(name, 0.0) + duration_ms

    def increment(self, name: str, amount: int = 1) -> None:
        if not self.enabled or amount == 0:
            return
        with self._counter_lock:
            self.counters[name] += amount

    def sample(self, values: dict[str, float]) -> None:
        """Record a diagnostics snapshot; each numeric entry feeds the gauge of the same name."""
        if not self.enabled:
            return
        for name, value in values.items():
            if isinstance(value, (int, float)):
                self.gauges[name].update(float(value))

    @staticmethod
    def _percentile(values: list[float], p: float) -> float:
        if not values:
            return 0.0
        ordered = sorted(values)
        index = int(math.ceil(len(ordered) * p)) - 1
        return ordered[max(0, min(len(ordered) - 1, index))]

    @classmethod
    def _stats(cls, values: list[float]) -> dict[str, float]:
        count = len(values)
        return {
            "count": float(count),
            "avg_ms": sum(values) / count if count else 0.0,
            "p95_ms": cls._percentile(values, 0.95),
            "max_ms": max(values, default=0.0),
        }

    def summary(self) -> dict[str, Any]:
        with self._counter_lock:
            counters = dict(sorted(self.counters.items()))
        return {
            "generated_at": time.strftime("%Y-%m-%d %H:%M:%S"),
            "slow_frame_threshold_ms": self.slow_frame_ms,
            "frame_stats_ms": {name: self._stats(s) for name, s in self.frame_samples_ms.items()},
            "section_stats_ms": {name: self._stats(s) for name, s in self.section_samples_ms.items()},
            "counters": counters,
            "gauges": {name: {"last": g.last, "peak": g.peak} for name, g in sorted(self.gauges.items())},
            "slow_frames": list(self.slow_frames),
        }

    @staticmethod
    def clear_previous_reports(output_dir: str | Path = "profiling") -> int:
        """Delete old reports in ``output_dir``; returns how many files were removed."""
        out_dir = Path(output_dir)
        if not out_dir.is_dir():
            return 0
        removed = 0
        for path in out_dir.glob(f"{REPORT_PREFIX}_*.*"):
            if path.suffix in (".txt", ".json"):
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    @staticmethod
    def _timing_lines(title: str, stats: dict[str, dict[str, float]], precision: int) -> list[str]:
        lines = [title]
        for name, s in sorted(stats.items(), key=lambda item: item[1]["p95_ms"], reverse=True):
            lines.append(
                f"- {name}: count={int(s['count'])} avg={s['avg_ms']:.{precision}f}ms "
                f"p95={s['p95_ms']:.{precision}f}ms max={s['max_ms']:.{precision}f}ms"
            )
        return lines + [""]

    def render_text(self, report: dict[str, Any]) -> str:
        lines = [REPORT_TITLE, f"Generated: {report['generated_at']}", f"Slow frame threshold: {self.slow_frame_ms:.2f} ms", ""]
        lines += self._timing_lines("Frame Stats", report["frame_stats_ms"], 2)
        lines += self._timing_lines("Section Stats", report["section_stats_ms"], 3)

        lines.append("Counters")
        lines += [f"- {name}: {value}" for name, value in report["counters"].items()]
        lines.append("")
        lines.append("Gauges")
        lines += [f"- {name}: last={g['last']:g} peak={g['peak']:g}" for name, g in report["gauges"].items()]
        lines.append("")

        slowest = sorted(report["slow_frames"], key=lambda f: f["total_ms"], reverse=True)[:25]
        lines.append(f"Slow Frames ({len(report['slow_frames'])})")
        for index, frame in enumerate(slowest, start=1):
            lines.append(f"{index}. {frame['kind']} total={frame['total_ms']:.2f}ms context={frame['context']}")
            lines += [f"   - {name}: {ms:.2f}ms" for name, ms in list(frame["sections_ms"].items())[:5]]
        return "\n".join(lines) + "\n"

    def write_report(self, output_dir: str | Path = "profiling") -> tuple[Path, Path] | None:
        if not self.enabled:
            return None

        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        stamp = time.strftime("%Y%m%d_%H%M%S")
        report = self.summary()

        json_text = json.dumps(report, indent=2)
        text = self.render_text(report)
        outputs = {".json": json_text, ".txt": text}
        for suffix, body in outputs.items():
            (out_dir / f"{REPORT_PREFIX}_{stamp}{suffix}").write_text(body, encoding="utf-8")
            (out_dir / f"{REPORT_PREFIX}_latest{suffix}").write_text(body, encoding="utf-8")
        return out_dir / f"{REPORT_PREFIX}_{stamp}.txt", out_dir / f"{REPORT_PREFIX}_{stamp}.json"
