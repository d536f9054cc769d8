from .base import VCSBackend, VCSError, detect_vcs, backend_classes
from .git import GitBackend, GitSvnBackend
from .svn import SvnBackend

__all__ = [
    "VCSBackend",
    "VCSError",
    "detect_vcs",
    "backend_classes",
    "GitBackend",
    "GitSvnBackend",
    "SvnBackend",
]
