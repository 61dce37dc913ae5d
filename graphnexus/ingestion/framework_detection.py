"""Framework-aware entry point scoring from file path conventions.

``detect_framework`` returns ``None`` for paths that follow no known
convention, which callers treat as a neutral 1.0 multiplier.
"""

from typing import Callable, List, NamedTuple, Optional

from ..types import FrameworkHint


class FrameworkRule(NamedTuple):
    framework: str
    multiplier: float
    reason: str
    matches: Callable[[str, str], bool]


def _has(path: str, *parts: str) -> bool:
    return any(part in path for part in parts)


def _ends(path: str, *suffixes: str) -> bool:
    return path.endswith(suffixes)


# Evaluated in order; specific route/page/controller rules precede catch-alls.
# Each predicate gets the normalized path and the original-case file name.
FRAMEWORK_RULES: List[FrameworkRule] = [
    # JavaScript / TypeScript
    FrameworkRule("nextjs-pages", 3.0, "nextjs-page", lambda p, f: (
        "/pages/" in p and "/_" not in p and "/api/" not in p
        and _ends(p, ".tsx", ".ts", ".jsx", ".js"))),
    FrameworkRule("nextjs-app", 3.0, "nextjs-app-page", lambda p, f: (
        "/app/" in p and _ends(p, "page.tsx", "page.ts", "page.jsx", "page.js"))),
    FrameworkRule("nextjs-api", 3.0, "nextjs-api-route", lambda p, f: (
        "/pages/api/" in p or ("/app/" in p and "/api/" in p and _ends(p, "route.ts", "route.js")))),
    FrameworkRule("nextjs-app", 2.0, "nextjs-layout", lambda p, f: (
        "/app/" in p and _ends(p, "layout.tsx", "layout.ts"))),
    FrameworkRule("express", 2.5, "routes-folder", lambda p, f: (
        "/routes/" in p and _ends(p, ".ts", ".js"))),
    FrameworkRule("mvc", 2.5, "controllers-folder", lambda p, f: (
        "/controllers/" in p and _ends(p, ".ts", ".js"))),
    FrameworkRule("handlers", 2.5, "handlers-folder", lambda p, f: (
        "/handlers/" in p and _ends(p, ".ts", ".js"))),
    FrameworkRule("react", 1.5, "react-component", lambda p, f: (
        _has(p, "/components/", "/views/") and _ends(p, ".tsx", ".jsx") and f[:1].isupper())),

    # Python
    FrameworkRule("django", 3.0, "django-views", lambda p, f: p.endswith("views.py")),
    FrameworkRule("django", 2.0, "django-urls", lambda p, f: p.endswith("urls.py")),
    FrameworkRule("fastapi", 2.5, "api-routers", lambda p, f: (
        _has(p, "/routers/", "/endpoints/", "/routes/") and p.endswith(".py"))),
    FrameworkRule("python-api", 2.0, "api-folder", lambda p, f: (
        "/api/" in p and p.endswith(".py") and not p.endswith("__init__.py"))),

    # Java
    FrameworkRule("spring", 3.0, "spring-controller", lambda p, f: (
        _has(p, "/controller/", "/controllers/") and p.endswith(".java"))),
    FrameworkRule("spring", 3.0, "spring-controller-file", lambda p, f: p.endswith("controller.java")),
    FrameworkRule("java-service", 1.8, "java-service", lambda p, f: (
        _has(p, "/service/", "/services/") and p.endswith(".java"))),

    # C# / .NET
    FrameworkRule("aspnet", 3.0, "aspnet-controller", lambda p, f: (
        "/controllers/" in p and p.endswith(".cs"))),
    FrameworkRule("aspnet", 3.0, "aspnet-controller-file", lambda p, f: p.endswith("controller.cs")),
    FrameworkRule("blazor", 2.5, "blazor-page", lambda p, f: "/pages/" in p and p.endswith(".razor")),

    # Go
    FrameworkRule("go-http", 2.5, "go-handlers", lambda p, f: (
        _has(p, "/handlers/", "/handler/") and p.endswith(".go"))),
    FrameworkRule("go-http", 2.5, "go-routes", lambda p, f: "/routes/" in p and p.endswith(".go")),
    FrameworkRule("go-mvc", 2.5, "go-controller", lambda p, f: "/controllers/" in p and p.endswith(".go")),
    FrameworkRule("go", 3.0, "go-main", lambda p, f: (
        p.endswith("/main.go") or ("/cmd/" in p and p.endswith(".go")))),

    # Rust
    FrameworkRule("rust-web", 2.5, "rust-handlers", lambda p, f: (
        _has(p, "/handlers/", "/routes/") and p.endswith(".rs"))),
    FrameworkRule("rust", 3.0, "rust-main", lambda p, f: p.endswith("/main.rs")),
    FrameworkRule("rust", 2.5, "rust-bin", lambda p, f: "/bin/" in p and p.endswith(".rs")),

    # C / C++
    FrameworkRule("c-cpp", 3.0, "c-main", lambda p, f: _ends(p, "/main.c", "/main.cpp", "/main.cc")),
    FrameworkRule("c-cpp", 2.5, "c-app", lambda p, f: "/src/" in p and _ends(p, "/app.c", "/app.cpp")),

    # Any language
    FrameworkRule("api", 1.8, "api-index", lambda p, f: (
        "/api/" in p and _ends(p, "/index.ts", "/index.js", "/__init__.py"))),
]


def normalize_file_path(file_path: str) -> str:
    """Lowercase, forward slashes, leading slash."""
    path = file_path.lower().replace("\\", "/")
    if not path.startswith("/"):
        path = "/" + path
    return path


def detect_framework(file_path: str) -> Optional[FrameworkHint]:
    """Entry point hint for a file path, or None when no convention applies."""
    normalized = normalize_file_path(file_path)
    file_name = file_path.replace("\\", "/").rsplit("/", 1)[-1]
    for rule in FRAMEWORK_RULES:
        if rule.matches(normalized, file_name):
            return FrameworkHint(rule.framework, rule.multiplier, rule.reason)
    return None


def entry_point_multiplier(file_path: str) -> float:
    hint = detect_framework(file_path)
    return hint.multiplier if hint else 1.0
