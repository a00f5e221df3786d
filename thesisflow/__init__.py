"""ThesisFlow thesis lifecycle engine.

ThesisFlow drives a student's thesis from application to archive:
- Application state machine (pending to approved, rejected or cancelled)
- Conclusion state machine of the approved thesis
- Append-only status ledger shared by both lifecycles
- Conclusion requests, drafts and final thesis uploads with PDF/A checks
- Deadline resolution against graduation sessions

Every operation runs as one unit of work: a single database transaction
plus staged file placement that only lands when the transaction commits.

Basic usage:
    >>> from thesisflow.config import Config
    >>> from thesisflow.runtime import ThesisRuntime
    >>> runtime = ThesisRuntime(Config(database_url="sqlite://", upload_root="/tmp/thesisflow"))
    >>> runtime.init_schema()
    >>> runtime.transition_conclusion({"thesisId": 1, "conclusionStatus": "conclusion_requested"})
"""

__version__ = "0.1.0"
__author__ = "ThesisFlow Team"

# Version info
VERSION = (0, 1, 0)

# Core exports
from thesisflow.config import Config
from thesisflow.runtime import ThesisRuntime
from thesisflow.types import StudentContext

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "Config",
    "StudentContext",
    "ThesisRuntime",
]
