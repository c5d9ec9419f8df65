"""Language adapters - per-language source naming, harness wrapping and commands"""

import platform
import re
import shutil
from dataclasses import dataclass, replace
from pathlib import Path
from string import Template
from typing import Dict, List, Optional, Sequence, Tuple, Union

from codegrade.config import settings
from codegrade.core.exceptions import UnsupportedLanguageError
from codegrade.schemas.execution import LanguageEnum, TestCase
from codegrade.services import harness
from codegrade.services.workspace import Workspace

Command = Tuple[str, List[str]]

HARNESS_CLASS = "__CodegradeHarness"

_IS_WINDOWS = platform.system() == "Windows"


def _binary_name(workspace: Workspace, suffix: str = "") -> Path:
    return workspace.path(f"solution_{workspace.job_id}{suffix}")


@dataclass(frozen=True)
class PreparedSource:
    """Program written for one job and how it is started"""
    path: Path
    harnessed: bool
    entry_point: Optional[str] = None


class LanguageAdapter:
    """
    How one language is written to disk, wrapped, compiled and run.

    Subclasses only override what differs; the base class covers an
    interpreted language whose source file is passed to an interpreter.
    """

    language: LanguageEnum
    extension: str = ""
    template: Template
    compiled = False
    # Whether RLIMIT_AS can be applied; runtimes that reserve large virtual
    # ranges up front (JVM, V8, CLR, Go) crash under it.
    memory_limited = False

    def quote(self, value: str) -> str:
        return harness.json_string_literal(value)

    def source_file_name(self, job_id: str, user_code: str) -> str:
        return f"solution_{job_id}{self.extension}"

    def toolchain(self) -> List[str]:
        """Executables that must be on PATH for this language"""
        return []

    def available(self) -> bool:
        return all(shutil.which(tool) for tool in self.toolchain())

    # Harness

    def prepare_code(self, user_code: str) -> str:
        """User code as placed into the harness template"""
        return user_code

    def template_extras(self, user_code: str) -> Dict[str, str]:
        return {}

    def wrap(self, user_code: str, test_cases: Sequence[TestCase], marker: str) -> str:
        """
        Append the test driver to user code.

        Returns the user code unchanged when there are no test cases.
        """
        if not test_cases:
            return user_code
        return harness.inject(
            self.template,
            self.prepare_code(user_code),
            [tc.input for tc in test_cases],
            [tc.expected_output for tc in test_cases],
            marker,
            quote=self.quote,
            **self.template_extras(user_code),
        )

    def prepare(
        self, workspace: Workspace, user_code: str, test_cases: Sequence[TestCase], marker: str
    ) -> PreparedSource:
        """Write the (wrapped) program into the workspace"""
        path = workspace.write_source(
            self.source_file_name(workspace.job_id, user_code),
            self.wrap(user_code, test_cases, marker),
        )
        return PreparedSource(path=path, harnessed=bool(test_cases))

    # Commands

    def needs_compile(self) -> bool:
        return self.compiled

    def compile_command(self, workspace: Workspace, source: PreparedSource) -> Optional[Command]:
        return None

    def run_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        raise NotImplementedError

    def artifacts_to_clean(self, workspace: Workspace) -> List[Path]:
        return []


class CompiledLanguageAdapter(LanguageAdapter):
    """Compiles to a native binary in the workspace and runs it"""

    compiled = True
    memory_limited = True

    def binary_path(self, workspace: Workspace) -> Path:
        return _binary_name(workspace, ".exe" if _IS_WINDOWS else "")

    def run_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        return str(self.binary_path(workspace)), []

    def artifacts_to_clean(self, workspace: Workspace) -> List[Path]:
        return [self.binary_path(workspace)]


class JavaScriptAdapter(LanguageAdapter):
    language = LanguageEnum.JAVASCRIPT
    extension = ".js"
    template = harness.JAVASCRIPT_HARNESS

    def toolchain(self) -> List[str]:
        return [settings.NODE_COMMAND]

    @staticmethod
    def _node_vm_flags() -> List[str]:
        """
        Node/V8 flags tuned for constrained sandboxes.

        Old-space is capped explicitly because RLIMIT_AS is not applied to V8.
        """
        limit_mb = max(64, int(settings.CODE_EXECUTION_MEMORY_LIMIT))
        old_space_mb = max(32, min(512, int(limit_mb * 0.75)))
        return [f"--max-old-space-size={old_space_mb}"]

    def run_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        return settings.NODE_COMMAND, [*self._node_vm_flags(), str(source.path)]


class PythonAdapter(LanguageAdapter):
    language = LanguageEnum.PYTHON
    extension = ".py"
    template = harness.PYTHON_HARNESS
    memory_limited = True

    def toolchain(self) -> List[str]:
        return [settings.get_python_command()]

    def run_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        return settings.get_python_command(), [str(source.path)]


class JavaAdapter(LanguageAdapter):
    language = LanguageEnum.JAVA
    extension = ".java"
    template = harness.JAVA_HARNESS
    compiled = True

    # Comments and string/char literals, blanked out before counting braces
    _NOISE = re.compile(r'//[^\n]*|/\*.*?\*/|"(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\\n])*\'', re.DOTALL)
    _CLASS_OR_BRACE = re.compile(
        r"[{}]|\b(public\s+)?(?:(?:final|abstract|static|strictfp)\s+)*class\s+([A-Za-z_$][\w$]*)"
    )

    def toolchain(self) -> List[str]:
        return ["javac", "java"]

    def top_level_classes(self, user_code: str) -> List[Tuple[str, bool]]:
        """(name, is_public) for every class declared outside any other class"""
        found = []
        depth = 0
        for match in self._CLASS_OR_BRACE.finditer(self._NOISE.sub(" ", user_code)):
            token = match.group(0)
            if token == "{":
                depth += 1
            elif token == "}":
                depth = max(0, depth - 1)
            elif depth == 0:
                found.append((match.group(2), match.group(1) is not None))
        return found

    def public_class(self, user_code: str) -> Optional[str]:
        return next((name for name, public in self.top_level_classes(user_code) if public), None)

    def class_name(self, user_code: str) -> str:
        """Public class name (javac requires the file to match it), else the first class"""
        classes = self.top_level_classes(user_code)
        if not classes:
            return "Solution"
        return self.public_class(user_code) or classes[0][0]

    def source_file_name(self, job_id: str, user_code: str) -> str:
        # The workspace directory is per job, so a fixed class-derived name is safe.
        public = self.public_class(user_code)
        if public:
            return f"{public}.java"
        return f"solution_{job_id}.java"

    def template_extras(self, user_code: str) -> Dict[str, str]:
        # The harness reflects on the first candidate that declares solution(String).
        primary = self.class_name(user_code)
        names = [primary] + [name for name, _ in self.top_level_classes(user_code) if name != primary]
        return {"class_names": ", ".join(self.quote(name) for name in names)}

    def prepare(self, workspace, user_code, test_cases, marker):
        prepared = super().prepare(workspace, user_code, test_cases, marker)
        return replace(prepared, entry_point=HARNESS_CLASS if test_cases else self.class_name(user_code))

    @staticmethod
    def _java_vm_flags() -> List[str]:
        """
        JVM flags tuned for constrained sandboxes.

        Without these, default JVM code cache reservation can exceed the
        memory budget and fail before compilation/execution starts.
        """
        limit_mb = max(64, int(settings.CODE_EXECUTION_MEMORY_LIMIT))
        heap_mb = max(32, min(128, limit_mb // 2))
        code_cache_mb = max(16, min(64, limit_mb // 4))
        initial_heap_mb = max(8, min(32, heap_mb // 4))
        return [
            f"-Xms{initial_heap_mb}m",
            f"-Xmx{heap_mb}m",
            f"-XX:ReservedCodeCacheSize={code_cache_mb}m",
            "-XX:+UseSerialGC",
        ]

    def compile_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        javac_flags = [f"-J{flag}" for flag in self._java_vm_flags()]
        return "javac", [
            *javac_flags,
            "-encoding", "UTF-8",
            "-d", str(workspace.directory),
            str(source.path),
        ]

    def run_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        return "java", [
            *self._java_vm_flags(),
            "-cp", str(workspace.directory),
            source.entry_point or "Solution",
        ]

    def artifacts_to_clean(self, workspace: Workspace) -> List[Path]:
        if not workspace.directory.exists():
            return []
        return sorted(workspace.directory.glob("*.class"))


class CppAdapter(CompiledLanguageAdapter):
    language = LanguageEnum.CPP
    extension = ".cpp"
    template = harness.CPP_HARNESS

    _HAS_MAIN = re.compile(r"\b(?:int|void)\s+main\s*\(")

    def toolchain(self) -> List[str]:
        return ["g++"]

    def template_extras(self, user_code: str) -> Dict[str, str]:
        # A user main() is renamed so the harness main can drive solution().
        if self._HAS_MAIN.search(user_code):
            return {"main_prefix": "#define main __codegrade_user_main", "main_suffix": "#undef main"}
        return {"main_prefix": "", "main_suffix": ""}

    def compile_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        return "g++", [
            "-std=c++17",
            "-O2",
            "-o", str(self.binary_path(workspace)),
            str(source.path),
        ]


class CSharpAdapter(CompiledLanguageAdapter):
    language = LanguageEnum.CSHARP
    extension = ".cs"
    template = harness.CSHARP_HARNESS
    memory_limited = False

    @staticmethod
    def resolve_compiler() -> Optional[str]:
        """
        Resolve an available C# compiler command in the current runtime.
        """
        for compiler in ("csc", "mcs", "dmcs"):
            if shutil.which(compiler):
                return compiler
        return None

    def available(self) -> bool:
        return self.resolve_compiler() is not None

    def binary_path(self, workspace: Workspace) -> Path:
        return _binary_name(workspace, ".exe")

    def compile_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        # With no compiler installed the spawn fails and is reported as such.
        compiler = self.resolve_compiler() or "csc"
        prefix = "/" if compiler == "csc" else "-"
        args = []
        if source.harnessed:
            args.append(f"{prefix}main:{HARNESS_CLASS}")
        args.extend([f"{prefix}out:{self.binary_path(workspace)}", str(source.path)])
        return compiler, args

    def run_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        executable = str(self.binary_path(workspace))
        if not _IS_WINDOWS and shutil.which("mono"):
            return "mono", [executable]
        return executable, []


class GoAdapter(CompiledLanguageAdapter):
    language = LanguageEnum.GO
    extension = ".go"
    template = harness.GO_HARNESS
    memory_limited = False

    _PACKAGE_CLAUSE = re.compile(r"^[ \t]*package[ \t]+\w+[^\n]*$", re.MULTILINE)
    _HAS_MAIN = re.compile(r"\bfunc\s+main\s*\(\s*\)")

    def toolchain(self) -> List[str]:
        return ["go"]

    def prepare_code(self, user_code: str) -> str:
        match = self._PACKAGE_CLAUSE.search(user_code)
        if match is None:
            return "package main\n" + harness.GO_HARNESS_IMPORTS + "\n" + user_code
        end = match.end()
        return user_code[:end] + "\n" + harness.GO_HARNESS_IMPORTS + user_code[end:]

    def template_extras(self, user_code: str) -> Dict[str, str]:
        return {"main_stub": "" if self._HAS_MAIN.search(user_code) else "\nfunc main() {}\n"}

    def compile_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        return "go", ["build", "-o", str(self.binary_path(workspace)), str(source.path)]


class RustAdapter(CompiledLanguageAdapter):
    language = LanguageEnum.RUST
    extension = ".rs"
    template = harness.RUST_HARNESS

    _HAS_MAIN = re.compile(r"\bfn\s+main\s*\(")

    def quote(self, value: str) -> str:
        return harness.rust_string_literal(value)

    def toolchain(self) -> List[str]:
        return ["rustc"]

    def prepare_code(self, user_code: str) -> str:
        # The harness supplies fn main; a second one cannot be renamed away.
        if self._HAS_MAIN.search(user_code):
            return (
                user_code
                + '\n\ncompile_error!("Rust submissions with test cases must define '
                + "`fn solution(input: &str) -> impl Display` and no `fn main`\");\n"
            )
        return user_code

    def compile_command(self, workspace: Workspace, source: PreparedSource) -> Command:
        return "rustc", [
            "--edition", "2021",
            "-O",
            "-o", str(self.binary_path(workspace)),
            str(source.path),
        ]


class LanguageRegistry:
    """Maps a language identifier (or alias) to its adapter"""

    def __init__(self, adapters: Sequence[LanguageAdapter]):
        self._adapters: Dict[LanguageEnum, LanguageAdapter] = {a.language: a for a in adapters}

    def dispatch(self, language: Union[str, LanguageEnum]) -> LanguageAdapter:
        """
        Raises:
            UnsupportedLanguageError: unknown identifier
        """
        try:
            key = LanguageEnum(language)
        except ValueError:
            raise UnsupportedLanguageError(str(language))
        adapter = self._adapters.get(key)
        if adapter is None:
            raise UnsupportedLanguageError(str(language))
        return adapter

    def adapters(self) -> List[LanguageAdapter]:
        return list(self._adapters.values())

    @property
    def supported_languages(self) -> List[str]:
        return [language.value for language in self._adapters]


# Singleton instance
language_registry = LanguageRegistry([
    JavaScriptAdapter(),
    PythonAdapter(),
    JavaAdapter(),
    CppAdapter(),
    CSharpAdapter(),
    GoAdapter(),
    RustAdapter(),
])
