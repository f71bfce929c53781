"""
End-effector trajectory log.

One comma-separated row per controller tick in external mode. The file is
opened in append mode so that repeated runs accumulate.
"""

import csv
from pathlib import Path
from typing import Union

import numpy as np


class TrajectoryWriter:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.rows = 0
        self._file = None
        self._writer = None

    def open(self) -> "TrajectoryWriter":
        if self._file is None:
            self._file = open(self.path, "a", newline="")
            self._writer = csv.writer(self._file)
        return self

    def append(self, position: np.ndarray) -> None:
        if self._file is None:
            self.open()
        self._writer.writerow([f"{v:.9g}" for v in np.asarray(position, dtype=float).reshape(-1)])
        self.rows += 1

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
