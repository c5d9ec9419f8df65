"""Code execution schemas"""

import json
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from codegrade.config import settings


class LanguageEnum(str, Enum):
    """Supported programming languages"""
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    JAVA = "java"
    CPP = "cpp"
    CSHARP = "csharp"
    GO = "go"
    RUST = "rust"

    @classmethod
    def _missing_(cls, value):
        # Case-insensitive lookup plus the accepted aliases
        if isinstance(value, str):
            key = value.strip().lower()
            key = LANGUAGE_ALIASES.get(key, key)
            for member in cls:
                if member.value == key:
                    return member
        return None


LANGUAGE_ALIASES = {
    "js": "javascript",
    "node": "javascript",
    "py": "python",
    "python3": "python",
    "c++": "cpp",
    "c#": "csharp",
    "cs": "csharp",
    "golang": "go",
    "rs": "rust",
}


class TestCase(BaseModel):
    """One input/expected-output pair"""
    __test__ = False

    input: str = ""
    expected_output: str = Field("", alias="expectedOutput")

    @field_validator("input", "expected_output", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        """Non-string JSON values are passed to programs in their JSON form"""
        if v is None:
            return ""
        if isinstance(v, str):
            return v
        return json.dumps(v)

    class Config:
        frozen = True
        populate_by_name = True


class TestDetail(BaseModel):
    """Per-test comparison reported by a harness"""
    __test__ = False

    index: int
    input: str
    expected: str
    actual: str
    passed: bool

    class Config:
        frozen = True


class ExecutionResult(BaseModel):
    """Outcome of one execution job; serialized with camelCase names"""
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    runtime_ms: int = 0
    tests_passed: Optional[int] = None
    tests_total: Optional[int] = None
    test_details: Optional[List[TestDetail]] = None

    class Config:
        frozen = True
        populate_by_name = True
        alias_generator = to_camel


class ExecuteRequest(BaseModel):
    """Execute request"""
    code: str = Field(..., min_length=1, max_length=settings.MAX_CODE_SIZE)
    language: LanguageEnum
    test_cases: List[TestCase] = Field(
        default_factory=list, alias="testCases", max_length=settings.MAX_TEST_CASES
    )
    timeout_ms: Optional[int] = Field(None, alias="timeoutMs", gt=0, le=60000)

    @field_validator("code")
    @classmethod
    def sanitize_code(cls, v):
        """Sanitize code input"""
        return v.replace("\x00", "")

    class Config:
        populate_by_name = True


class ExecuteResponse(BaseModel):
    """Execute response"""
    message: str = "Code executed successfully"
    result: ExecutionResult


class LanguageInfo(BaseModel):
    """Supported language with its toolchain status"""
    language: LanguageEnum
    aliases: List[str] = []
    compiled: bool
    available: bool
