"""Language table: source extension and build/run argument vectors."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from coderoom.execution.config import ExecutionConfig
from coderoom.models.enums import Language


class StepKind(StrEnum):
    COMPILE = "compile"
    RUN = "run"


@dataclass(frozen=True)
class PipelineStep:
    """One external process invocation. ``argv`` is never passed to a shell."""

    kind: StepKind
    argv: tuple[str, ...]


@dataclass(frozen=True)
class Pipeline:
    language: Language
    source: Path
    steps: tuple[PipelineStep, ...]
    limit_address_space: bool = True


StepBuilder = Callable[[Path, ExecutionConfig], tuple[PipelineStep, ...]]


@dataclass(frozen=True)
class LanguageSpec:
    """How one language is materialised and executed.

    Attributes:
        language: The language tag.
        extension: Source file extension, including the dot.
        build: Returns the pipeline steps for a source path.
        source_stem: Fixed file stem, for languages that tie the file name
            to the program's entry point (Java's ``public class Main``).
        limit_address_space: Whether ``SandboxLimits.memory_mb`` applies.
    """

    language: Language
    extension: str
    build: StepBuilder
    source_stem: str | None = None
    limit_address_space: bool = True

    def source_filename(self, stem: str) -> str:
        return f"{self.source_stem or stem}{self.extension}"


def _run(*argv: str) -> PipelineStep:
    return PipelineStep(StepKind.RUN, argv)


def _compile(*argv: str) -> PipelineStep:
    return PipelineStep(StepKind.COMPILE, argv)


def _interpreted(tool: str) -> StepBuilder:
    def build(source: Path, config: ExecutionConfig) -> tuple[PipelineStep, ...]:
        return (_run(config.tool(tool), str(source)),)

    return build


def _native(tool: str, *flags: str) -> StepBuilder:
    """Compiler producing a native binary next to the source."""

    def build(source: Path, config: ExecutionConfig) -> tuple[PipelineStep, ...]:
        binary = source.with_suffix("")
        return (
            _compile(config.tool(tool), *flags, str(source), "-o", str(binary)),
            _run(str(binary)),
        )

    return build


def _go(source: Path, config: ExecutionConfig) -> tuple[PipelineStep, ...]:
    binary = source.with_suffix("")
    return (
        _compile(config.tool("go"), "build", "-o", str(binary), str(source)),
        _run(str(binary)),
    )


def _java(source: Path, config: ExecutionConfig) -> tuple[PipelineStep, ...]:
    classes = str(source.parent)
    return (
        _compile(config.tool("javac"), "-d", classes, str(source)),
        _run(config.tool("java"), "-cp", classes, source.stem),
    )


def _csharp(source: Path, config: ExecutionConfig) -> tuple[PipelineStep, ...]:
    assembly = source.with_suffix(".exe")
    return (
        _compile(config.tool("mcs"), f"-out:{assembly}", str(source)),
        _run(config.tool("mono"), str(assembly)),
    )


def _typescript(source: Path, config: ExecutionConfig) -> tuple[PipelineStep, ...]:
    return (
        _compile(config.tool("tsc"), "--outDir", str(source.parent), str(source)),
        _run(config.tool("node"), str(source.with_suffix(".js"))),
    )


LANGUAGES: dict[Language, LanguageSpec] = {
    lang.language: lang
    for lang in (
        LanguageSpec(Language.C, ".c", _native("gcc")),
        LanguageSpec(Language.PYTHON, ".py", _interpreted("python3")),
        LanguageSpec(
            Language.JAVA, ".java", _java, source_stem="Main", limit_address_space=False
        ),
        LanguageSpec(Language.CPP, ".cpp", _native("g++")),
        LanguageSpec(
            Language.JAVASCRIPT, ".js", _interpreted("node"), limit_address_space=False
        ),
        LanguageSpec(Language.TYPESCRIPT, ".ts", _typescript, limit_address_space=False),
        LanguageSpec(Language.GO, ".go", _go, limit_address_space=False),
        LanguageSpec(
            Language.RUST,
            ".rs",
            _native("rustc", "--crate-name", "main"),
            limit_address_space=False,
        ),
        LanguageSpec(Language.PHP, ".php", _interpreted("php")),
        LanguageSpec(Language.CSHARP, ".cs", _csharp, limit_address_space=False),
    )
}


def lookup_language(tag: str) -> LanguageSpec | None:
    """Return the table entry for a language tag, or ``None`` if it is not supported."""
    try:
        return LANGUAGES[Language(tag)]
    except ValueError:
        return None


def build_pipeline(lang: LanguageSpec, source: Path, config: ExecutionConfig) -> Pipeline:
    return Pipeline(
        language=lang.language,
        source=source,
        steps=lang.build(source, config),
        limit_address_space=lang.limit_address_space,
    )
