# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    ASSET_NOT_FOUND = ErrorInfo("Asset not found", status.HTTP_404_NOT_FOUND)
    SCENARIO_NOT_FOUND = ErrorInfo("Scenario not found", status.HTTP_404_NOT_FOUND)
    PORTFOLIO_EMPTY = ErrorInfo("No assets found for user", status.HTTP_404_NOT_FOUND)
    JOB_NOT_FOUND = ErrorInfo("Unknown or expired jobId", status.HTTP_404_NOT_FOUND)
    RESULT_NOT_FOUND = ErrorInfo(
        "No analysis result for this asset/scenario pair", status.HTTP_404_NOT_FOUND
    )
    ANALYSIS_FAILED = ErrorInfo(
        "Matrix analysis failed", status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    INVALID_TRANSITION = ErrorInfo("Invalid job transition", status.HTTP_409_CONFLICT)
    INTERNAL_ERROR = ErrorInfo("Internal Error", status.HTTP_502_BAD_GATEWAY)
