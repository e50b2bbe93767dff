"""Tests for the retry-with-feedback generation loop."""

import shlex
import sys

import pytest
import yaml

from sysconst.generation import (
    build_error_feedback_prompt,
    command_generator,
    extract_yaml,
    generate_with_validation,
)
from sysconst.validation import ErrorCode, ErrorLevel, ValidationIssue


class ScriptedGenerator:
    """Returns canned responses in order and records the prompts it saw."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        return self.responses[min(len(self.prompts), len(self.responses)) - 1]


@pytest.fixture
def valid_yaml(minimal_document):
    return yaml.safe_dump(minimal_document, sort_keys=False)


class TestExtractYaml:
    """Pulling the document out of generator output."""

    def test_fenced_block(self):
        content = "Here you go:\n```yaml\nspec: sysconst/v1\nproject: {}\n```\nEnjoy."
        assert extract_yaml(content) == "spec: sysconst/v1\nproject: {}"

    def test_unlabelled_fence(self):
        assert extract_yaml("```\na: 1\n```") == "a: 1"

    def test_spec_tag_start(self):
        assert extract_yaml("Sure!\nspec: sysconst/v1\nproject: {}\n") == "spec: sysconst/v1\nproject: {}"

    def test_plain_content(self):
        assert extract_yaml("  a: 1  \n") == "a: 1"


def test_build_error_feedback_prompt():
    errors = [
        ValidationIssue(ErrorCode.UNRESOLVED_ROOT, 2, ErrorLevel.HARD, "Root node not found: system.x",
                        "structure.root"),
        ValidationIssue(ErrorCode.MISSING_SPEC_VERSION, 1, ErrorLevel.HARD, "Missing 'spec' field",
                        suggestion="Add 'spec: sysconst/v1' at the root"),
    ]

    prompt = build_error_feedback_prompt("Build a todo app", errors)

    assert prompt.startswith("Build a todo app")
    assert "- [UNRESOLVED_ROOT] Root node not found: system.x" in prompt
    assert "  Location: structure.root" in prompt
    assert "  Fix: Add 'spec: sysconst/v1' at the root" in prompt
    assert prompt.rstrip().endswith("passes all validation phases.")


class TestGenerateWithValidation:
    """Loop control."""

    def test_first_attempt_passes(self, valid_yaml, minimal_document):
        generator = ScriptedGenerator(f"```yaml\n{valid_yaml}```")

        result = generate_with_validation(generator, "Build a todo app")

        assert result.success
        assert result.attempts == 1
        assert result.document == minimal_document
        assert result.errors == []
        assert generator.prompts == ["Build a todo app"]

    def test_retries_with_feedback(self, valid_yaml):
        generator = ScriptedGenerator("spec: sysconst/v1\n", valid_yaml)
        attempts = []

        result = generate_with_validation(generator, "Build a todo app", max_attempts=3,
                                          on_attempt=lambda n, total: attempts.append((n, total)))

        assert result.success
        assert result.attempts == 2
        assert attempts == [(1, 3), (2, 3)]
        assert "MISSING_PROJECT" in generator.prompts[1]
        assert generator.prompts[1].startswith("Build a todo app")

    def test_parse_errors_are_fed_back(self, valid_yaml):
        generator = ScriptedGenerator("spec: [unclosed", valid_yaml)

        result = generate_with_validation(generator, "Build a todo app")

        assert result.success
        assert "[STRUCTURAL_ERROR]" in generator.prompts[1]

    def test_gives_up_after_max_attempts(self):
        generator = ScriptedGenerator("spec: sysconst/v2\n")

        result = generate_with_validation(generator, "Build a todo app", max_attempts=2)

        assert not result.success
        assert result.attempts == 2
        assert result.document is None
        assert ErrorCode.INVALID_SPEC_VERSION in [error.code for error in result.errors]
        assert len(generator.prompts) == 2

    def test_feedback_is_built_from_the_original_prompt(self):
        generator = ScriptedGenerator("nope")

        generate_with_validation(generator, "Build a todo app", max_attempts=3)

        assert generator.prompts[2].count("VALIDATION ERRORS FROM PREVIOUS ATTEMPT") == 1

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            generate_with_validation(ScriptedGenerator("x"), "prompt", max_attempts=0)


class TestCommandGenerator:
    """External command as a generator."""

    @pytest.fixture
    def script(self, tmp_path):
        def _script(body):
            path = tmp_path / "generator.py"
            path.write_text(body, encoding="utf-8")
            return f"{shlex.quote(sys.executable)} {shlex.quote(str(path))}"
        return _script

    def test_prompt_on_stdin(self, script):
        generate = command_generator(script("import sys\nprint('echo: ' + sys.stdin.read())\n"))

        assert generate("Build a todo app") == "echo: Build a todo app\n"

    def test_drives_the_loop(self, script, valid_yaml, tmp_path):
        (tmp_path / "document.yaml").write_text(valid_yaml, encoding="utf-8")
        body = (
            "import pathlib, sys\n"
            "sys.stdin.read()\n"
            f"print(pathlib.Path({str(tmp_path / 'document.yaml')!r}).read_text())\n"
        )

        result = generate_with_validation(command_generator(script(body)), "Build a todo app")

        assert result.success
        assert result.attempts == 1

    def test_failing_command(self, script):
        generate = command_generator(script("import sys\nsys.stderr.write('no credits')\nsys.exit(3)\n"))

        with pytest.raises(RuntimeError, match="exited with code 3: no credits"):
            generate("Build a todo app")

    def test_empty_command(self):
        with pytest.raises(ValueError, match="must not be empty"):
            command_generator("   ")
