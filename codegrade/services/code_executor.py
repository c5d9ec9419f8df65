"""Code execution engine - compile, run and grade one program per call"""

import logging
import math
import time
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from codegrade.config import settings
from codegrade.core.exceptions import (
    CompileError,
    ExecutionCancelledError,
    ExecutionError,
    ExecutionRuntimeError,
    ExecutionTimeoutError,
    InvalidRequestError,
    SpawnError,
    UnsupportedLanguageError,
)
from codegrade.schemas.execution import ExecutionResult, LanguageEnum, TestCase
from codegrade.services.harness import new_marker
from codegrade.services.language_adapters import (
    LanguageAdapter,
    LanguageRegistry,
    language_registry,
)
from codegrade.services.process_runner import (
    CancellationToken,
    ProcessOutcome,
    ProcessRunner,
    ResourceLimits,
    process_runner,
)
from codegrade.services.result_parser import ParsedOutput, ResultParser, result_parser
from codegrade.services.workspace import Workspace, workspace_scope

logger = logging.getLogger(__name__)


class CodeExecutor:
    """Multi-language execution engine"""

    def __init__(
        self,
        registry: LanguageRegistry = language_registry,
        runner: ProcessRunner = process_runner,
        parser: ResultParser = result_parser,
        temp_dir: Optional[Union[str, Path]] = None,
    ):
        self.registry = registry
        self.runner = runner
        self.parser = parser
        self.timeout_ms = settings.CODE_EXECUTION_TIMEOUT_MS
        self.compile_timeout_ms = settings.COMPILE_TIMEOUT_MS
        self.memory_limit = settings.CODE_EXECUTION_MEMORY_LIMIT
        self.temp_dir = Path(temp_dir or settings.get_temp_dir())
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def execute_code(
        self,
        code: str,
        language: Union[str, LanguageEnum],
        test_cases: Optional[Iterable[Any]] = None,
        timeout_ms: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """
        Execute code, optionally against test cases

        Args:
            code: Source code
            language: Language identifier or alias
            test_cases: TestCase objects or dicts with input/expectedOutput;
                empty or None runs the program as-is
            timeout_ms: Run-step wall-clock bound, defaults to settings
            cancel_token: Optional token that aborts the job

        Returns:
            ExecutionResult; failures are reported in it, never raised
        """
        start = time.perf_counter()

        try:
            adapter = self.registry.dispatch(language)
        except UnsupportedLanguageError as e:
            logger.warning(e.message)
            return self._failure(e, start)

        try:
            cases = self._normalize_test_cases(test_cases)
            marker = new_marker()
            with workspace_scope(self.temp_dir) as workspace:
                try:
                    return self._run_job(
                        adapter, workspace, code, cases, marker,
                        timeout_ms or self.timeout_ms, cancel_token, start,
                    )
                finally:
                    workspace.track(adapter.artifacts_to_clean(workspace))
        except ExecutionError as e:
            return self._failure(e, start)
        except Exception as e:
            logger.exception(f"Unexpected error executing {adapter.language.value} code: {e}")
            return self._failure(ExecutionRuntimeError(str(e) or type(e).__name__), start)

    def _run_job(
        self,
        adapter: LanguageAdapter,
        workspace: Workspace,
        code: str,
        test_cases: List[TestCase],
        marker: str,
        timeout_ms: int,
        cancel_token: Optional[CancellationToken],
        start: float,
    ) -> ExecutionResult:
        source = adapter.prepare(workspace, code, test_cases, marker)

        if adapter.needs_compile():
            command, args = adapter.compile_command(workspace, source)
            outcome = self.runner.run(
                command, args, workspace.directory, self.compile_timeout_ms,
                cancel_token=cancel_token,
            )
            if not outcome.exit_succeeded:
                raise self._compile_failure(adapter, outcome)

        command, args = adapter.run_command(workspace, source)
        outcome = self.runner.run(
            command, args, workspace.directory, timeout_ms,
            limits=self._resource_limits(adapter, timeout_ms),
            cancel_token=cancel_token,
        )

        if not outcome.exit_succeeded:
            error = self._run_failure(adapter, outcome)
            try:
                parsed = self.parser.parse(outcome.stdout, marker)
            except ExecutionError:
                parsed = ParsedOutput(display_output=outcome.stdout)
            return self._failure(error, start, parsed)

        # MalformedVerdictError propagates to execute_code
        parsed = self.parser.parse(outcome.stdout, marker)
        return ExecutionResult(
            success=True,
            output=parsed.display_output,
            runtime_ms=self._elapsed_ms(start),
            tests_passed=parsed.tests_passed,
            tests_total=parsed.tests_total,
            test_details=parsed.test_details,
        )

    @staticmethod
    def _normalize_test_cases(test_cases: Optional[Iterable[Any]]) -> List[TestCase]:
        if not test_cases:
            return []
        try:
            return [tc if isinstance(tc, TestCase) else TestCase.model_validate(tc) for tc in test_cases]
        except PydanticValidationError as e:
            raise InvalidRequestError(f"Invalid test case: {e.errors()[0].get('msg', 'invalid value')}")

    def _resource_limits(self, adapter: LanguageAdapter, timeout_ms: int) -> Optional[ResourceLimits]:
        if not settings.EXECUTION_RESOURCE_LIMITS:
            return None
        return ResourceLimits(
            cpu_seconds=math.ceil(timeout_ms / 1000.0) + 1,
            memory_mb=self.memory_limit if adapter.memory_limited else None,
        )

    @staticmethod
    def _compile_failure(adapter: LanguageAdapter, outcome: ProcessOutcome) -> ExecutionError:
        if outcome.spawn_failed:
            return SpawnError(outcome.stderr)
        if outcome.cancelled:
            return ExecutionCancelledError()
        if outcome.timed_out:
            logger.warning(f"Compilation of {adapter.language.value} code timed out")
            return ExecutionTimeoutError(f"Compilation exceeded time limit. {outcome.stderr}")
        diagnostic = (outcome.stderr or outcome.stdout or "Compilation failed").strip()
        logger.info(f"Compilation error ({adapter.language.value}): {diagnostic[:500]}")
        return CompileError(diagnostic)

    @staticmethod
    def _run_failure(adapter: LanguageAdapter, outcome: ProcessOutcome) -> ExecutionError:
        if outcome.spawn_failed:
            return SpawnError(outcome.stderr)
        if outcome.cancelled:
            return ExecutionCancelledError()
        if outcome.timed_out:
            logger.warning(f"{adapter.language.value} program exceeded its time limit")
            return ExecutionTimeoutError(outcome.stderr)
        stderr = outcome.stderr.strip()
        return ExecutionRuntimeError(stderr or f"Process exited with code {outcome.exit_code}")

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.perf_counter() - start) * 1000)

    def _failure(
        self, error: ExecutionError, start: float, parsed: Optional[ParsedOutput] = None
    ) -> ExecutionResult:
        return ExecutionResult(
            success=False,
            output=(parsed.display_output or None) if parsed else None,
            error=error.message,
            error_type=error.error_type,
            runtime_ms=self._elapsed_ms(start),
            tests_passed=parsed.tests_passed if parsed else None,
            tests_total=parsed.tests_total if parsed else None,
            test_details=parsed.test_details if parsed else None,
        )


# Singleton instance
code_executor = CodeExecutor()
