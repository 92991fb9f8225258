from datetime import datetime

from .models import GlobalStats, TimelineType
from .utils import format_duration


def _iso(ts: datetime) -> str:
    return ts.isoformat(timespec="seconds")


def render_worker_table(stats: GlobalStats) -> str:
    lines = ["2. Queries per user:"]
    lines.append(
        "   User   |   Total Queries   |   Average Time   |   Fastest Time   |   Slowest Time"
    )
    for worker_id in sorted(stats.per_worker):
        ws = stats.per_worker[worker_id]
        lines.append(
            f"   {worker_id:<6} |   {ws.total_executions:<15} |   "
            f"{format_duration(ws.average_duration):<14} |   "
            f"{format_duration(ws.min_duration):<14} |   "
            f"{format_duration(ws.max_duration)}"
        )
    return "\n".join(lines)


def render_report(stats: GlobalStats, start_time: datetime, end_time: datetime) -> str:
    elapsed = (end_time - start_time).total_seconds()
    throughput = stats.total_executions / elapsed if elapsed > 0 else 0.0
    average = stats.running_average_duration if stats.total_executions else None

    lines = [
        "Results:",
        f"1. Total queries executed: {stats.total_executions}",
        render_worker_table(stats),
        f"3. Average query completion time: {format_duration(average)}",
        f"4. Longest query execution time: {format_duration(stats.max_duration)}",
        f"5. Shortest query execution time: {format_duration(stats.min_duration)}",
        f"6. Number of unsuccessful queries (in percentage): {stats.failure_percentage:.2f}%",
        f"7. Number of successful queries (in percentage): {stats.success_percentage:.2f}%",
        f"8. Throughput: {throughput:.2f} queries/s",
        f"9. CLI start time: {_iso(start_time)}",
        f"10. CLI end time: {_iso(end_time)}",
    ]
    return "\n".join(lines)


def render_timeline(timeline: TimelineType, width: int = 80) -> str:
    if not any(timeline.values()):
        return "No timeline data."

    max_t = max(end_rel for segs in timeline.values() for _, end_rel, _ in segs)
    if max_t <= 0:
        max_t = 1.0

    lines = ["Query Timeline (relative seconds, '=' ok, 'x' failed)"]
    for worker_id in sorted(timeline.keys()):
        buf = [" "] * width
        for start_rel, end_rel, succeeded in timeline[worker_id]:
            a = int(start_rel / max_t * (width - 1))
            b = int(end_rel / max_t * (width - 1))
            a, b = max(0, a), max(a, b)
            for k in range(a, min(b, width - 1) + 1):
                if buf[k] != "x":
                    buf[k] = "=" if succeeded else "x"
        lines.append(f"W{worker_id:02d} |{''.join(buf)}|")
    lines.append(f"0s{' ' * (width - 6)}~ {max_t:.2f}s")
    return "\n".join(lines)
