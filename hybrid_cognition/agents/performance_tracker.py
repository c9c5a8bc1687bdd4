#!/usr/bin/env python3
"""
Performance Tracker - rolling per-paradigm performance windows
"""

import logging
from datetime import datetime
from typing import Dict, Any, Iterable, Optional

import numpy as np

from .shared_types import ReasoningParadigm, ParadigmPerformance, PerformanceSample

logger = logging.getLogger(__name__)

EFFICIENCY_HORIZON_MS = 10_000.0


class PerformanceTracker:
    """Owns one ParadigmPerformance per registered paradigm"""

    def __init__(self, paradigms: Iterable[ReasoningParadigm], window: int = 20):
        self.window = window
        self.performance: Dict[ReasoningParadigm, ParadigmPerformance] = {
            p: ParadigmPerformance(paradigm=p) for p in paradigms
        }

    def record(self, paradigm: ReasoningParadigm, confidence: float, reasoning_time_ms: float,
               memory_usage: float = 0.0) -> ParadigmPerformance:
        """Append one completed invocation and recompute the window means"""
        perf = self.performance.setdefault(paradigm, ParadigmPerformance(paradigm=paradigm))
        perf.recent_performances.append(PerformanceSample(
            accuracy=confidence,
            efficiency=max(0.0, 1.0 - reasoning_time_ms / EFFICIENCY_HORIZON_MS),
            confidence=confidence,
            reasoning_time=reasoning_time_ms,
            memory_usage=memory_usage,
        ))
        if len(perf.recent_performances) > self.window:
            del perf.recent_performances[:-self.window]

        samples = perf.recent_performances
        perf.success_rate = float(np.mean([s.accuracy for s in samples]))
        perf.average_time = float(np.mean([s.reasoning_time for s in samples]))
        perf.average_confidence = float(np.mean([s.confidence for s in samples]))
        perf.usage_count += 1
        perf.last_used = datetime.now()

        logger.debug(f"{paradigm.value}: success {perf.success_rate:.2f}, "
                     f"avg time {perf.average_time:.1f}ms over {len(samples)} samples")
        return perf

    def get(self, paradigm: ReasoningParadigm) -> Optional[ParadigmPerformance]:
        return self.performance.get(paradigm)

    def multiplier(self, paradigm: ReasoningParadigm) -> float:
        """0.5 + 0.5 * success rate (0.75 for a paradigm never used)"""
        perf = self.performance.get(paradigm)
        success = perf.success_rate if perf else 0.5
        return 0.5 + 0.5 * success

    def summary(self) -> Dict[str, Dict[str, Any]]:
        return {
            p.value: {
                'success_rate': perf.success_rate,
                'average_time': perf.average_time,
                'average_confidence': perf.average_confidence,
                'usage_count': perf.usage_count,
                'last_used': perf.last_used.isoformat() if perf.last_used else None,
            }
            for p, perf in self.performance.items()
        }
