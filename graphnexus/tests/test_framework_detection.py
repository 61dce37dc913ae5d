import pytest

from graphnexus.ingestion.framework_detection import (
    detect_framework,
    entry_point_multiplier,
    normalize_file_path,
)


class TestDetectFramework:
    """Entry-point hints from path conventions."""

    @pytest.mark.parametrize("path, framework, multiplier", [
        ("src/pages/index.tsx", "nextjs-pages", 3.0),
        ("app/dashboard/page.tsx", "nextjs-app", 3.0),
        ("app/layout.tsx", "nextjs-app", 2.0),
        ("myapp/views.py", "django", 3.0),
        ("src/main/java/com/acme/UserController.java", "spring", 3.0),
        ("cmd/server/main.go", "go", 3.0),
        ("src/main.rs", "rust", 3.0),
        ("Api/Controllers/UsersController.cs", "aspnet", 3.0),
    ])
    def test_known_conventions(self, path, framework, multiplier):
        hint = detect_framework(path)
        assert hint is not None
        assert hint.framework == framework
        assert hint.multiplier == multiplier

    def test_api_routes_take_precedence(self):
        """Next.js API routes are not treated as pages."""
        assert detect_framework("pages/api/users.ts").reason == "nextjs-api-route"
        assert detect_framework("app/api/users/route.ts").reason == "nextjs-api-route"

    def test_react_component_needs_pascal_case(self):
        """Component files count only when the file name starts upper-case."""
        assert detect_framework("src/components/Button.tsx").framework == "react"
        assert detect_framework("src/components/button.tsx") is None

    def test_go_files_under_cmd(self):
        """Any Go file below cmd/ is an entry point."""
        assert detect_framework("cmd/tool/run.go").reason == "go-main"

    def test_windows_separators(self):
        assert detect_framework("src\\routes\\users.js").framework == "express"

    def test_no_convention(self):
        """Plain library files get no hint and a neutral multiplier."""
        assert detect_framework("src/utils/strings.ts") is None
        assert entry_point_multiplier("src/utils/strings.ts") == 1.0

    def test_multiplier(self):
        assert entry_point_multiplier("handlers/user.go") == 2.5


class TestHelpers:
    def test_normalize_file_path(self):
        assert normalize_file_path("Src\\Pages\\Index.tsx") == "/src/pages/index.tsx"
