# repository/namespaces.py
from typing import Final

ROOT: Final[str] = "finex"

JOBS: Final[str] = f"{ROOT}:jobs"
RESULTS: Final[str] = f"{ROOT}:results"  # per (asset, scenario) analysis snapshots
