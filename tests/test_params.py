"""Tests for parameter sets, stack builders, and the merged parameter builder."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from sonarbridge.exceptions import ConfigurationError
from sonarbridge.models.params import InvocationParameterSet, ParamOrigin
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.builder import ParameterBuilder
from sonarbridge.params.registry import BUILDER_REGISTRY, StackBuilder, create_builders
from sonarbridge.process import CommandResult


@pytest.fixture
def no_build_tools():
    """Make every classpath probe fail as if mvn/gradle were not installed."""
    with patch(
        "sonarbridge.params.classpath.run_command",
        new_callable=AsyncMock,
        side_effect=ConfigurationError("mvn not found on PATH"),
    ) as mock:
        yield mock


# ── InvocationParameterSet ───────────────────────────────────────────────


class TestInvocationParameterSet:
    def test_add_deduplicates_entries(self):
        params = InvocationParameterSet()
        params.add("sonar.sources", "src", "lib")
        params.add("sonar.sources", "lib,web")
        assert params.get("sonar.sources") == "src,lib,web"

    def test_merge_unions_lists_and_keeps_first_scalar(self):
        first = InvocationParameterSet({"sonar.sources": "src", "sonar.java.source": "17"})
        second = InvocationParameterSet({"sonar.sources": "src,web", "sonar.java.source": "8"})
        first.merge(second)
        assert first.get("sonar.sources") == "src,web"
        assert first.get("sonar.java.source") == "17"

    def test_overrides_replace_and_are_tagged(self):
        params = InvocationParameterSet({"sonar.sources": "src"})
        params.apply_overrides({"sonar.sources": "custom", "sonar.branch.name": "main"})
        assert params.get("sonar.sources") == "custom"
        assert params.origin("sonar.sources") is ParamOrigin.OVERRIDE
        assert params.origin("sonar.branch.name") is ParamOrigin.OVERRIDE

    def test_drop_redundant_root(self):
        params = InvocationParameterSet()
        params.add("sonar.sources", ".", "web")
        params.add("sonar.tests", ".")
        params.drop_redundant_root()
        assert params.get_list("sonar.sources") == ["web"]
        assert params.get_list("sonar.tests") == ["."]

    def test_drop_redundant_root_leaves_overrides(self):
        params = InvocationParameterSet()
        params.apply_overrides({"sonar.sources": ".,web"})
        params.drop_redundant_root()
        assert params.get("sonar.sources") == ".,web"

    def test_frozen_rejects_mutation(self):
        params = InvocationParameterSet({"sonar.sources": "."}).freeze()
        assert params.frozen
        with pytest.raises(RuntimeError):
            params.set("sonar.sources", "src")
        with pytest.raises(RuntimeError):
            params.add("sonar.exclusions", "**/x/**")

    def test_to_args(self):
        params = InvocationParameterSet({"sonar.sources": "src", "sonar.java.source": "17"})
        assert params.to_args() == ["-Dsonar.sources=src", "-Dsonar.java.source=17"]


# ── registry ─────────────────────────────────────────────────────────────


class TestRegistry:
    def test_every_stack_kind_has_a_builder(self):
        ParameterBuilder()  # imports and registers every stack module
        assert set(BUILDER_REGISTRY) == set(StackKind)

    def test_builders_satisfy_protocol(self):
        ParameterBuilder()
        for builder in create_builders().values():
            assert isinstance(builder, StackBuilder)


# ── detection ────────────────────────────────────────────────────────────


class TestDetect:
    def test_polyglot_detects_every_stack(self, make_tree):
        root = make_tree(
            {
                "pom.xml": "<project/>",
                "src/main/java/App.java": "class App {}",
                "package.json": "{}",
                "web/index.js": "",
            }
        )
        kinds = [s.kind for s in ParameterBuilder().detect(root)]
        assert kinds == [StackKind.JAVA_MAVEN, StackKind.JAVASCRIPT]

    def test_generic_java_not_reported_with_build_tool(self, make_tree):
        root = make_tree({"build.gradle": "", "src/main/java/App.java": ""})
        kinds = [s.kind for s in ParameterBuilder().detect(root)]
        assert kinds == [StackKind.JAVA_GRADLE]

    def test_poetry_detected(self, make_tree):
        root = make_tree({"pyproject.toml": "[tool.poetry]\nname = 'x'\n"})
        [stack] = ParameterBuilder().detect(root)
        assert stack.kind is StackKind.PYTHON
        assert stack.hint("packaging") == "poetry"

    def test_go_module_hints(self, make_tree):
        root = make_tree({"go.mod": "module example.com/svc\n\ngo 1.22\n"})
        [stack] = ParameterBuilder().detect(root)
        assert stack.hint("module") == "example.com/svc"
        assert stack.hint("go_version") == "1.22"

    def test_resolve_declared_kind_without_marker(self, tmp_path):
        [stack] = ParameterBuilder().resolve(tmp_path, [StackKind.GO])
        assert stack.kind is StackKind.GO
        assert stack.marker == "declared"


# ── build ────────────────────────────────────────────────────────────────


class TestBuild:
    @pytest.mark.anyio
    async def test_empty_tree_scans_root(self, tmp_path):
        params = await ParameterBuilder().build(tmp_path)
        assert params.as_dict() == {"sonar.sources": "."}

    @pytest.mark.anyio
    async def test_empty_tree_keeps_overrides(self, tmp_path):
        params = await ParameterBuilder().build(tmp_path, {"sonar.exclusions": "**/gen/**"})
        assert params.get("sonar.sources") == "."
        assert params.get("sonar.exclusions") == "**/gen/**"

    @pytest.mark.anyio
    async def test_java_and_javascript_merge(self, make_tree, no_build_tools):
        root = make_tree(
            {
                "pom.xml": "<project/>",
                "src/main/java/App.java": "class App {}",
                "src/test/java/AppTest.java": "class AppTest {}",
                "package.json": "{}",
                "web/index.js": "console.log(1)",
            }
        )
        params = await ParameterBuilder().build(root)

        assert params.get_list("sonar.sources") == ["src/main/java", "web"]
        assert params.get_list("sonar.tests") == ["src/test/java"]
        exclusions = params.get_list("sonar.exclusions")
        assert "**/target/**" in exclusions
        assert "**/node_modules/**" in exclusions
        assert "sonar.java.libraries" not in params
        keys = params.keys()
        assert len(keys) == len(set(keys))

    @pytest.mark.anyio
    async def test_override_wins_over_detection(self, make_tree, no_build_tools):
        root = make_tree({"pom.xml": "<project/>", "src/main/java/App.java": ""})
        params = await ParameterBuilder().build(root, {"sonar.sources": "custom/src"})
        assert params.get("sonar.sources") == "custom/src"
        assert params.origin("sonar.sources") is ParamOrigin.OVERRIDE

    @pytest.mark.anyio
    async def test_maven_compiled_classes_and_version(self, make_tree, no_build_tools):
        root = make_tree(
            {
                "pom.xml": (
                    '<project xmlns="http://maven.apache.org/POM/4.0.0">'
                    "<properties><maven.compiler.release>17</maven.compiler.release></properties>"
                    "</project>"
                ),
                "src/main/java/App.java": "",
                "target/classes/": "",
                "target/site/jacoco/jacoco.xml": "<report/>",
            }
        )
        params = await ParameterBuilder().build(root)
        assert params.get("sonar.java.binaries") == "target/classes"
        assert params.get("sonar.java.source") == "17"
        assert params.get("sonar.coverage.jacoco.xmlReportPaths") == "target/site/jacoco/jacoco.xml"

    @pytest.mark.anyio
    async def test_gradle_build_outputs_excluded(self, make_tree, no_build_tools):
        root = make_tree({"build.gradle": "", "src/main/java/App.java": ""})
        params = await ParameterBuilder().build(root)
        assert params.get_list("sonar.exclusions") == ["**/build/**", "**/.gradle/**"]

    @pytest.mark.anyio
    async def test_maven_multi_module(self, make_tree, no_build_tools):
        root = make_tree(
            {
                "pom.xml": "<project/>",
                "core/src/main/java/A.java": "",
                "api/src/main/java/B.java": "",
            }
        )
        params = await ParameterBuilder().build(root)
        assert params.get_list("sonar.sources") == ["api/src/main/java", "core/src/main/java"]

    @pytest.mark.anyio
    async def test_maven_libraries_from_classpath(self, make_tree):
        root = make_tree({"pom.xml": "<project/>", "src/main/java/App.java": ""})
        result = CommandResult(0, "[INFO] Dependencies classpath:\n/repo/a.jar:/repo/b.jar\n", "")
        with patch("sonarbridge.params.classpath.run_command", new_callable=AsyncMock, return_value=result):
            params = await ParameterBuilder().build(root)
        assert params.get_list("sonar.java.libraries") == ["/repo/a.jar", "/repo/b.jar"]

    @pytest.mark.anyio
    async def test_python_app_layout(self, make_tree):
        root = make_tree(
            {
                "pyproject.toml": '[project]\nname = "svc"\nrequires-python = ">=3.9,<3.12"\n',
                "app/main.py": "",
                "tests/test_main.py": "",
            }
        )
        params = await ParameterBuilder().build(root)
        assert params.get_list("sonar.sources") == ["app"]
        assert params.get("sonar.tests") == "tests"
        assert params.get("sonar.python.version") == "3.9,3.10,3.11"
        assert "tests/**" not in params.get_list("sonar.exclusions")

    @pytest.mark.anyio
    async def test_python_root_sources_exclude_tests(self, make_tree):
        root = make_tree({"setup.py": "", "pkg.py": "", "tests/test_pkg.py": ""})
        params = await ParameterBuilder().build(root)
        assert params.get("sonar.sources") == "."
        assert params.get("sonar.tests") == "tests"
        assert "tests/**" in params.get_list("sonar.exclusions")

    @pytest.mark.anyio
    async def test_python_without_tests_dir_excludes_test_files(self, make_tree):
        root = make_tree({"requirements.txt": "", "src/pkg/mod.py": ""})
        params = await ParameterBuilder().build(root)
        assert params.get("sonar.sources") == "src"
        assert "sonar.tests" not in params
        assert "**/test_*.py" in params.get_list("sonar.exclusions")

    @pytest.mark.anyio
    async def test_typescript(self, make_tree):
        root = make_tree({"package.json": "{}", "tsconfig.json": "{}", "src/app.ts": ""})
        params = await ParameterBuilder().build(root)
        assert params.get("sonar.sources") == "src"
        assert params.get("sonar.typescript.tsconfigPath") == "tsconfig.json"

    @pytest.mark.anyio
    async def test_cfamily_without_compile_commands(self, make_tree):
        root = make_tree({"CMakeLists.txt": "", "src/main.c": ""})
        params = await ParameterBuilder().build(root)
        assert params.get("sonar.sources") == "src"
        assert "sonar.cfamily.compile-commands" not in params

    @pytest.mark.anyio
    async def test_declared_stacks_skip_detection(self, make_tree):
        root = make_tree({"package.json": "{}", "web/index.js": "", "go.mod": "module x\n"})
        builder = ParameterBuilder()
        params = await builder.build(root, stacks=builder.resolve(root, [StackKind.GO]))
        assert params.get("sonar.sources") == "."
        assert "**/*_test.go" in params.get_list("sonar.exclusions")
        assert "**/node_modules/**" not in params.get_list("sonar.exclusions")

    @pytest.mark.anyio
    async def test_custom_builder_mapping(self, tmp_path):
        class _Stub:
            kind = StackKind.GO

            def detect(self, root):
                return TechStack(kind=StackKind.GO, marker="stub")

            async def build(self, root, stack):
                return InvocationParameterSet({"sonar.sources": "cmd"})

        params = await ParameterBuilder({StackKind.GO: _Stub()}).build(tmp_path)
        assert params.as_dict() == {"sonar.sources": "cmd"}
