"""Execution routes - run code, optionally against test cases"""

import logging
from typing import List

from fastapi import APIRouter
from prometheus_client import Counter, Histogram

from codegrade.schemas.execution import (
    LANGUAGE_ALIASES,
    ExecuteRequest,
    ExecuteResponse,
    LanguageInfo,
)
from codegrade.schemas.response import ErrorResponse
from codegrade.services.code_executor import code_executor
from codegrade.services.language_adapters import language_registry

logger = logging.getLogger(__name__)

router = APIRouter()

EXECUTION_COUNT = Counter(
    "codegrade_executions_total",
    "Total execution jobs",
    ["language", "outcome"],
)
EXECUTION_LATENCY = Histogram(
    "codegrade_execution_duration_seconds",
    "Execution job duration (compile + run) in seconds",
    ["language"],
)


@router.post(
    "/execute",
    response_model=ExecuteResponse,
    responses={422: {"model": ErrorResponse}},
)
def execute(request: ExecuteRequest):
    """
    Execute code

    Runs on the worker threadpool; the job blocks until its process exits
    or is killed.

    Args:
        request: Code, language, optional test cases and timeout

    Returns:
        Execution result (failures are reported in it with HTTP 200)
    """
    language = request.language.value
    result = code_executor.execute_code(
        code=request.code,
        language=language,
        test_cases=request.test_cases,
        timeout_ms=request.timeout_ms,
    )

    outcome = "success" if result.success else (result.error_type or "error")
    EXECUTION_COUNT.labels(language, outcome).inc()
    EXECUTION_LATENCY.labels(language).observe(result.runtime_ms / 1000.0)

    if result.tests_total is not None:
        logger.info(
            f"Executed {language} job: {outcome}, {result.tests_passed}/{result.tests_total} tests "
            f"in {result.runtime_ms} ms"
        )
    else:
        logger.info(f"Executed {language} job: {outcome} in {result.runtime_ms} ms")

    return ExecuteResponse(message="Code executed successfully", result=result)


@router.get("/languages", response_model=List[LanguageInfo])
def list_languages():
    """Registered languages, their aliases and toolchain availability"""
    return [
        LanguageInfo(
            language=adapter.language,
            aliases=sorted(alias for alias, name in LANGUAGE_ALIASES.items() if name == adapter.language.value),
            compiled=adapter.compiled,
            available=adapter.available(),
        )
        for adapter in language_registry.adapters()
    ]
