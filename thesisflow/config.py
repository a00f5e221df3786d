"""Runtime configuration and logging setup.

Settings are read from the environment, with a ``.env`` file in the working
directory loaded first when present.
"""

import logging
import os
import sys
from typing import FrozenSet, Optional

from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> FrozenSet[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


class Config:
    """Application settings.

    Attributes:
        database_url: SQLAlchemy database URL
        upload_root: Directory that contains the ``uploads/`` tree
        resume_required_collegi: Degree collegio codes for which a thesis
            resume is mandatory
        log_level: Name of the root log level
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        upload_root: Optional[str] = None,
        resume_required_collegi: Optional[FrozenSet[str]] = None,
        log_level: Optional[str] = None,
    ):
        self.database_url = database_url or os.getenv("DATABASE_URL", "sqlite:///instance/thesisflow.db")
        self.upload_root = upload_root or os.getenv("UPLOAD_ROOT", os.getcwd())
        if resume_required_collegi is None:
            resume_required_collegi = _split_csv(os.getenv("RESUME_REQUIRED_COLLEGI", "CL003"))
        self.resume_required_collegi = frozenset(resume_required_collegi)
        self.log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

    @classmethod
    def from_env(cls) -> "Config":
        return cls()


def setup_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``thesisflow`` logger."""
    logger = logging.getLogger("thesisflow")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(getattr(h, "_thesisflow", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        handler._thesisflow = True
        logger.addHandler(handler)


__all__ = [
    "Config",
    "setup_logging",
]
