import gc
import random
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil

from .base import POLL_COUNT, RANDOM_VALUE, Metric


@dataclass
class RuntimeReading:
    """One consistent read of process, interpreter and host statistics."""

    memory: Any
    cpu_times: Any
    ctx_switches: Any
    memory_percent: float
    cpu_percent: float
    num_threads: int
    open_handles: int
    create_time: float
    gc_counts: Tuple[int, int, int]
    gc_stats: List[Dict[str, int]]
    allocated_blocks: int
    virtual_memory: Any
    swap: Any
    system_cpu_percent: float
    load_average: Tuple[float, float, float]
    timestamp: float


def _open_handles(process: psutil.Process) -> int:
    if hasattr(process, "num_fds"):
        return process.num_fds()
    return process.num_handles()


def _gc_stat(reading: RuntimeReading, generation: int, key: str) -> float:
    return float(reading.gc_stats[generation].get(key, 0))


def _gc_total(reading: RuntimeReading, key: str) -> float:
    return float(sum(stats.get(key, 0) for stats in reading.gc_stats))


RUNTIME_GAUGES: List[Tuple[str, Callable[[RuntimeReading], float]]] = [
    ("RSS", lambda r: r.memory.rss),
    ("VMS", lambda r: r.memory.vms),
    ("MemoryPercent", lambda r: r.memory_percent),
    ("CPUPercent", lambda r: r.cpu_percent),
    ("UserTime", lambda r: r.cpu_times.user),
    ("SystemTime", lambda r: r.cpu_times.system),
    ("NumThreads", lambda r: r.num_threads),
    ("OpenHandles", lambda r: r.open_handles),
    ("CtxSwitchesVoluntary", lambda r: r.ctx_switches.voluntary),
    ("CtxSwitchesInvoluntary", lambda r: r.ctx_switches.involuntary),
    ("GCGen0Count", lambda r: r.gc_counts[0]),
    ("GCGen1Count", lambda r: r.gc_counts[1]),
    ("GCGen2Count", lambda r: r.gc_counts[2]),
    ("GCGen0Collections", lambda r: _gc_stat(r, 0, "collections")),
    ("GCGen1Collections", lambda r: _gc_stat(r, 1, "collections")),
    ("GCGen2Collections", lambda r: _gc_stat(r, 2, "collections")),
    ("GCCollected", lambda r: _gc_total(r, "collected")),
    ("GCUncollectable", lambda r: _gc_total(r, "uncollectable")),
    ("AllocatedBlocks", lambda r: r.allocated_blocks),
    ("TotalMemory", lambda r: r.virtual_memory.total),
    ("FreeMemory", lambda r: r.virtual_memory.available),
    ("UsedMemory", lambda r: r.virtual_memory.used),
    ("SwapUsed", lambda r: r.swap.used),
    ("CPUutilization", lambda r: r.system_cpu_percent),
    ("LoadAverage1", lambda r: r.load_average[0]),
    ("Uptime", lambda r: r.timestamp - r.create_time),
]


class Collector:
    """Samples the runtime into a fresh metric set on every call.

    ``poll_count`` is the lifetime number of samples taken; each snapshot
    reports one poll as a ``PollCount`` counter delta.
    """

    def __init__(
        self,
        process: Optional[psutil.Process] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.process = process or psutil.Process()
        self.poll_count = 0
        self._random = rng or random.Random()

    def read(self) -> RuntimeReading:
        process = self.process
        with process.oneshot():
            return RuntimeReading(
                memory=process.memory_info(),
                cpu_times=process.cpu_times(),
                ctx_switches=process.num_ctx_switches(),
                memory_percent=process.memory_percent(),
                cpu_percent=process.cpu_percent(interval=None),
                num_threads=process.num_threads(),
                open_handles=_open_handles(process),
                create_time=process.create_time(),
                gc_counts=gc.get_count(),
                gc_stats=gc.get_stats(),
                allocated_blocks=sys.getallocatedblocks(),
                virtual_memory=psutil.virtual_memory(),
                swap=psutil.swap_memory(),
                system_cpu_percent=psutil.cpu_percent(interval=None),
                load_average=psutil.getloadavg(),
                timestamp=time.time(),
            )

    def collect(self) -> Dict[str, Metric]:
        reading = self.read()
        self.poll_count += 1

        metrics = {
            name: Metric.gauge(name, float(accessor(reading)))
            for name, accessor in RUNTIME_GAUGES
        }
        metrics[RANDOM_VALUE] = Metric.gauge(RANDOM_VALUE, self._random.random())
        metrics[POLL_COUNT] = Metric.counter(POLL_COUNT, 1)
        return metrics
