"""Turn raw program stdout into display output and a test verdict"""

from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from codegrade.core.exceptions import MalformedVerdictError
from codegrade.schemas.execution import TestDetail


class HarnessVerdict(BaseModel):
    """JSON line printed by a harness after its marker"""
    passed: int = Field(ge=0)
    total: int = Field(ge=0)
    output: str = ""
    tests: List[TestDetail] = Field(default_factory=list)

    class Config:
        strict = True

    @model_validator(mode="after")
    def _passed_within_total(self):
        if self.passed > self.total:
            raise ValueError("passed exceeds total")
        return self


@dataclass(frozen=True)
class ParsedOutput:
    display_output: str
    tests_passed: Optional[int] = None
    tests_total: Optional[int] = None
    test_details: Optional[List[TestDetail]] = None


class ResultParser:
    """Locates the job marker in stdout and decodes the verdict after it"""

    def parse(self, raw_stdout: str, marker: str) -> ParsedOutput:
        """
        Split raw stdout into display output and verdict.

        Without a marker line the stdout is returned verbatim. Anything the
        program printed before the marker is kept in front of the harness log,
        including a last line that had no newline and so ran into the marker.

        Raises:
            MalformedVerdictError: marker present but the next line is missing
                or is not a valid verdict
        """
        lines = raw_stdout.splitlines()
        position = next((i for i, line in enumerate(lines) if line.rstrip().endswith(marker)), None)
        if position is None:
            return ParsedOutput(display_output=raw_stdout)

        if position + 1 >= len(lines):
            raise MalformedVerdictError()
        try:
            verdict = HarnessVerdict.model_validate_json(lines[position + 1])
        except ValidationError:
            raise MalformedVerdictError()

        preceding = lines[:position]
        unterminated = lines[position].rstrip()[: -len(marker)]
        if unterminated.strip():
            preceding.append(unterminated)
        preamble = "\n".join(preceding)
        display = f"{preamble}\n{verdict.output}" if preamble else verdict.output
        return ParsedOutput(
            display_output=display,
            tests_passed=verdict.passed,
            tests_total=verdict.total,
            test_details=verdict.tests,
        )


# Singleton instance
result_parser = ResultParser()
