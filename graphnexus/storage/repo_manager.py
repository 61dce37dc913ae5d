import hashlib
import json
import os
import tempfile
from pathlib import Path
from typing import List, Dict, Any, Optional

from ..config import settings
from ..errors import RepoNotFoundError
from ..types import RegistryEntry, RepoMeta
from ..utils.logger import app_logger


def normalize_path(path: str, case_insensitive: bool = False) -> str:
    """Absolute path with forward slashes and no trailing separator."""
    normalized = os.path.abspath(path).replace("\\", "/")
    if len(normalized) > 1:
        normalized = normalized.rstrip("/") or "/"
    return normalized.lower() if case_insensitive else normalized


def is_same_or_nested(repo_path: str, cwd: str) -> bool:
    """True when the paths are equal or one contains the other at a separator."""
    if repo_path == cwd:
        return True
    repo_prefix = repo_path if repo_path.endswith("/") else repo_path + "/"
    cwd_prefix = cwd if cwd.endswith("/") else cwd + "/"
    return cwd.startswith(repo_prefix) or repo_path.startswith(cwd_prefix)


def detect_case_insensitive(directory: Path) -> bool:
    """Check whether the filesystem holding ``directory`` ignores case."""
    directory.mkdir(parents=True, exist_ok=True)
    fd, marker = tempfile.mkstemp(prefix="GraphNexusCaseCheck", dir=str(directory))
    os.close(fd)
    try:
        swapped = os.path.join(os.path.dirname(marker), os.path.basename(marker).swapcase())
        return os.path.exists(swapped)
    finally:
        os.remove(marker)


class RepoManager:
    """Global registry of indexed repositories and their on-disk storage.

    Layout::

        <home>/registry.json
        <home>/repos/<hash>/meta.json
        <home>/repos/<hash>/kuzu
    """

    def __init__(self, home_dir: Optional[str] = None, case_insensitive: Optional[bool] = None):
        self.logger = app_logger.bind(component="repo_manager")
        self.home_dir = Path(home_dir).expanduser() if home_dir else settings.home_path
        self._case_insensitive = case_insensitive

    @property
    def repos_dir(self) -> Path:
        return self.home_dir / "repos"

    @property
    def registry_path(self) -> Path:
        return self.home_dir / settings.registry_file_name

    @property
    def case_insensitive(self) -> bool:
        if self._case_insensitive is None:
            try:
                self._case_insensitive = detect_case_insensitive(self.home_dir)
            except OSError as e:
                self.logger.warning(f"Case sensitivity check failed, assuming case-sensitive: {e}")
                self._case_insensitive = False
        return self._case_insensitive

    @staticmethod
    def hash_repo_path(repo_path: str) -> str:
        resolved = str(Path(repo_path).resolve())
        return hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:12]

    def storage_path_for(self, repo_path: str) -> Path:
        return self.repos_dir / self.hash_repo_path(repo_path)

    def kuzu_path_for(self, repo_path: str) -> Path:
        return self.storage_path_for(repo_path) / "kuzu"

    # Per-repository metadata

    def save_meta(self, storage_path: Path, meta: RepoMeta):
        storage_path = Path(storage_path)
        storage_path.mkdir(parents=True, exist_ok=True)
        self._write_json(storage_path / settings.meta_file_name, meta.to_dict())

    def load_meta(self, storage_path: Path) -> Optional[RepoMeta]:
        meta_path = Path(storage_path) / settings.meta_file_name
        try:
            with open(meta_path, "r", encoding="utf-8") as f:
                return RepoMeta.from_dict(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Invalid meta file {meta_path}: {e}")
            return None

    # Global registry

    def _read_registry(self) -> List[Dict[str, Any]]:
        try:
            with open(self.registry_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            self.logger.warning(f"Could not read registry {self.registry_path}: {e}")
            return []
        return data if isinstance(data, list) else []

    def _write_json(self, path: Path, data: Any):
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)

    def register_repo(self, repo_path: str, meta: RepoMeta) -> RegistryEntry:
        """Add or refresh a repository's registry entry."""
        resolved = str(Path(repo_path).resolve())
        entry = RegistryEntry(
            name=Path(resolved).name,
            path=resolved,
            storage_path=str(self.storage_path_for(resolved)),
            indexed_at=meta.indexed_at,
            last_commit=meta.last_commit,
            stats=dict(meta.stats),
        )
        entries = [e for e in self._read_registry() if e.get("path") != resolved]
        entries.append(entry.to_dict())
        self._write_json(self.registry_path, entries)
        self.logger.info(f"Registered {entry.name} at {resolved}")
        return entry

    def unregister_repo(self, repo_path: str) -> bool:
        resolved = str(Path(repo_path).resolve())
        entries = self._read_registry()
        remaining = [e for e in entries if e.get("path") != resolved]
        if len(remaining) == len(entries):
            return False
        self._write_json(self.registry_path, remaining)
        self.logger.info(f"Unregistered {resolved}")
        return True

    def list_registered_repos(self, validate: bool = False) -> List[RegistryEntry]:
        """All registry entries, optionally only those whose storage still exists."""
        entries = []
        for raw in self._read_registry():
            try:
                entry = RegistryEntry.from_dict(raw)
            except (KeyError, TypeError) as e:
                self.logger.warning(f"Skipping malformed registry entry: {e}")
                continue
            if validate and not Path(entry.storage_path).exists():
                self.logger.debug(f"Dropping {entry.name}: storage missing at {entry.storage_path}")
                continue
            entries.append(entry)
        return entries

    def find_repo_for_path(self, cwd: str) -> Optional[RegistryEntry]:
        """Most specific registered repository containing, or contained by, ``cwd``."""
        try:
            case_insensitive = self.case_insensitive
            target = normalize_path(cwd, case_insensitive)
            best = None
            best_length = -1
            for entry in self.list_registered_repos(validate=True):
                repo_path = normalize_path(entry.path, case_insensitive)
                if is_same_or_nested(repo_path, target) and len(repo_path) > best_length:
                    best = entry
                    best_length = len(repo_path)
            return best
        except Exception as e:
            self.logger.debug(f"Repository lookup for {cwd} failed: {e}")
            return None

    def get_repo(self, name: Optional[str] = None) -> RegistryEntry:
        """Find a repository by name, or the first registered one.

        Raises RepoNotFoundError when nothing matches.
        """
        entries = self.list_registered_repos(validate=True)
        if name:
            for entry in entries:
                if entry.name == name:
                    return entry
            raise RepoNotFoundError(name)
        if not entries:
            raise RepoNotFoundError()
        return entries[0]
