# util/metrics.py
import threading
from typing import Dict, Tuple

LabelKey = Tuple[Tuple[str, str], ...]


def _key(name: str, labels: Dict[str, object]) -> Tuple[str, LabelKey]:
    return name, tuple(sorted((k, str(v)) for k, v in labels.items()))


class MetricsRegistry:
    """
    In-process counters and gauges. One instance is built at startup and handed
    to every component that reports; tests build their own.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[Tuple[str, LabelKey], float] = {}
        self._gauges: Dict[Tuple[str, LabelKey], float] = {}

    def inc(self, name: str, amount: float = 1.0, **labels: object) -> None:
        k = _key(name, labels)
        with self._lock:
            self._counters[k] = self._counters.get(k, 0.0) + amount

    def set(self, name: str, value: float, **labels: object) -> None:
        with self._lock:
            self._gauges[_key(name, labels)] = float(value)

    def get(self, name: str, **labels: object) -> float:
        k = _key(name, labels)
        with self._lock:
            if k in self._counters:
                return self._counters[k]
            return self._gauges.get(k, 0.0)

    def total(self, name: str) -> float:
        """Sum of a counter across all label sets."""
        with self._lock:
            return sum(v for (n, _), v in self._counters.items() if n == name)

    def snapshot(self) -> Dict[str, float]:
        def fmt(name: str, labels: LabelKey) -> str:
            if not labels:
                return name
            inner = ",".join(f'{k}="{v}"' for k, v in labels)
            return f"{name}{{{inner}}}"

        with self._lock:
            out = {fmt(n, lbl): v for (n, lbl), v in self._counters.items()}
            out.update({fmt(n, lbl): v for (n, lbl), v in self._gauges.items()})
        return out
