class GraphNexusError(Exception):
    """Base error for GraphNexus."""


class NotInitializedError(GraphNexusError):
    """Raised when a store operation runs before the connection was opened."""

    def __init__(self, repo_id: str = ""):
        self.repo_id = repo_id
        message = "Graph store not initialized"
        if repo_id:
            message += f" for repo '{repo_id}'"
        super().__init__(f"{message}. Call open() first.")


class RepoNotFoundError(GraphNexusError):
    """Raised when no registered repository matches a name or path."""

    def __init__(self, repo: str = ""):
        self.repo = repo
        super().__init__(f"Repository not found: {repo}" if repo else "No indexed repositories")


class FileNotFoundInRepoError(GraphNexusError):
    """Raised when a requested file does not exist inside a repository."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}")


class PathOutsideRepoError(GraphNexusError):
    """Raised when a requested file resolves outside the repository root."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path escapes repository root: {path}")
