"""Pydantic schemas for API validation"""

from codegrade.schemas.execution import (
    LanguageEnum,
    TestCase,
    TestDetail,
    ExecutionResult,
    ExecuteRequest,
    ExecuteResponse,
    LanguageInfo,
)
from codegrade.schemas.response import ErrorResponse, HealthResponse

__all__ = [
    "LanguageEnum", "TestCase", "TestDetail", "ExecutionResult",
    "ExecuteRequest", "ExecuteResponse", "LanguageInfo",
    "ErrorResponse", "HealthResponse",
]
