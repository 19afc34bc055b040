# alex_adaptation/utils/metrics_providers.py
import asyncio
import copy
import logging
import time
from typing import Dict, Any, Optional, Mapping

import psutil

logger_metrics = logging.getLogger(__name__)


def merge_metrics(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Nested merge of two metrics mappings; values in ``overrides`` win."""
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_metrics(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class PsutilMetricsProvider:
    """
    Reads OS counters through psutil and merges them with application counters
    (response time, success rate, quality) supplied by the host service.
    """

    def __init__(self, application_metrics: Optional[Mapping[str, Any]] = None):
        self._application_metrics: Dict[str, Any] = dict(application_metrics or {})
        # Prime cpu_percent so the first non-blocking read is meaningful
        psutil.cpu_percent(interval=None)

    def update_application_metrics(self, metrics: Mapping[str, Any]) -> None:
        self._application_metrics = merge_metrics(self._application_metrics, metrics)

    def _collect_os_metrics(self) -> Dict[str, Any]:
        cores = psutil.cpu_count() or 1
        try:
            load_1m = psutil.getloadavg()[0] / cores
        except (AttributeError, OSError) as e:
            logger_metrics.debug(f"Load average unavailable: {e}")
            load_1m = 1.0
        vm = psutil.virtual_memory()
        return {
            "cpu": {"usage": psutil.cpu_percent(interval=None), "load": load_1m, "cores": cores},
            "memory": {
                "used": (vm.total - vm.available) / (1024 * 1024),
                "total": vm.total / (1024 * 1024),
                "percentage": vm.percent,
            },
            "timestamp": time.time(),
        }

    async def collect(self) -> Dict[str, Any]:
        try:
            # psutil calls can block, keep them off the event loop
            os_metrics = await asyncio.get_running_loop().run_in_executor(None, self._collect_os_metrics)
        except Exception as e:
            logger_metrics.warning(f"Failed psutil check: {e}")
            os_metrics = {"timestamp": time.time()}
        return merge_metrics(os_metrics, self._application_metrics)


class StaticMetricsProvider:
    """Returns a fixed metrics mapping. Used for deterministic runs and tests."""

    def __init__(self, metrics: Optional[Mapping[str, Any]] = None):
        self._metrics: Dict[str, Any] = copy.deepcopy(dict(metrics or {}))
        self.collect_count = 0

    def set_metrics(self, metrics: Mapping[str, Any]) -> None:
        self._metrics = copy.deepcopy(dict(metrics))

    async def collect(self) -> Dict[str, Any]:
        self.collect_count += 1
        return copy.deepcopy(self._metrics)
