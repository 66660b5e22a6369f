"""Value set expansion."""

from igpublisher.terminology.models import ExpansionError, ExpansionOutcome, NeedsServer
from igpublisher.terminology.service import Expander, TerminologyService

__all__ = [
    "Expander",
    "ExpansionError",
    "ExpansionOutcome",
    "NeedsServer",
    "TerminologyService",
]
