# core/calibration.py
import bisect
import json
import logging
from pathlib import Path
from typing import Callable, Sequence

logger = logging.getLogger(__name__)

# Maps a raw impact score in [-5, 5] to a corrected one.
Calibration = Callable[[float], float]


def identity_calibration(raw: float) -> float:
    return raw


class IsotonicCalibration:
    """
    Piece-wise constant mapping fitted offline by isotonic regression.

    Below the first knot returns y[0]; above the last returns y[-1]; an exact knot
    returns its y; otherwise the y of the knot just below.
    """

    def __init__(self, x: Sequence[float], y: Sequence[float]) -> None:
        if not x or len(x) != len(y):
            raise ValueError("calibration needs equally sized, non-empty x and y")
        if any(b <= a for a, b in zip(x, x[1:])):
            raise ValueError("calibration x must be strictly increasing")
        if any(b < a for a, b in zip(y, y[1:])):
            raise ValueError("calibration y must be non-decreasing")
        self._x = [float(v) for v in x]
        self._y = [float(v) for v in y]

    @classmethod
    def from_file(cls, path: str | Path) -> "IsotonicCalibration":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        cal = cls(data["x"], data["y"])
        logger.info("calibration.load path=%s knots=%d", path, len(cal._x))
        return cal

    def __call__(self, raw: float) -> float:
        idx = bisect.bisect_left(self._x, raw)
        if idx == len(self._x):
            return self._y[-1]
        if self._x[idx] == raw:
            return self._y[idx]
        if idx == 0:
            return self._y[0]
        return self._y[idx - 1]


def load_calibration(path: str | None) -> Calibration:
    if not path:
        return identity_calibration
    return IsotonicCalibration.from_file(path)
