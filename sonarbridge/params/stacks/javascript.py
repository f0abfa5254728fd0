"""JavaScript / TypeScript projects."""

from __future__ import annotations

from pathlib import Path

from sonarbridge.models.params import ROOT, InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.probes import first_existing, source_dirs
from sonarbridge.params.registry import BaseStackBuilder, register_builder

SOURCE_DIRS = ["src", "lib", "app", "client", "frontend", "web"]
EXCLUSIONS = [
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/coverage/**",
    "**/*.min.js",
    "**/*.bundle.js",
]
TEST_INCLUSIONS = [
    "**/*.test.ts",
    "**/*.test.tsx",
    "**/*.test.js",
    "**/*.test.jsx",
    "**/*.spec.ts",
    "**/*.spec.tsx",
    "**/*.spec.js",
    "**/*.spec.jsx",
]
LOCKFILES = {
    "package-lock.json": "npm",
    "yarn.lock": "yarn",
    "pnpm-lock.yaml": "pnpm",
    "bun.lockb": "bun",
}

_SUFFIXES = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")


@register_builder
class JavaScriptBuilder(BaseStackBuilder):
    kind = StackKind.JAVASCRIPT

    def detect(self, root: Path) -> TechStack | None:
        has_package = (root / "package.json").is_file()
        has_tsconfig = (root / "tsconfig.json").is_file()
        if not (has_package or has_tsconfig):
            return None
        lockfile = next((tool for name, tool in LOCKFILES.items() if (root / name).is_file()), None)
        return self.stack(
            "package.json" if has_package else "tsconfig.json",
            typescript=has_tsconfig,
            package_manager=lockfile,
        )

    async def build(self, root: Path, stack: TechStack) -> InvocationParameterSet:
        params = InvocationParameterSet()
        found = source_dirs(root, SOURCE_DIRS, _SUFFIXES)
        params.add("sonar.sources", *(found or [ROOT]))
        params.add("sonar.exclusions", *EXCLUSIONS)
        params.add("sonar.test.inclusions", *TEST_INCLUSIONS)
        params.set("sonar.javascript.file.suffixes", ".js,.jsx")
        if stack.hint("typescript"):
            params.set("sonar.typescript.tsconfigPath", "tsconfig.json")
            params.set("sonar.typescript.file.suffixes", ".ts,.tsx")
        lcov = first_existing(root, ["coverage/lcov.info"])
        if lcov.ok:
            params.add("sonar.javascript.lcov.reportPaths", lcov.value)
        return params
