"""igpublisher - publishes FHIR implementation guides as serializations, HTML fragments and a validation report."""

from igpublisher.config import PublisherConfig, load_config
from igpublisher.errors import ClassificationError, FetchError, PublishError
from igpublisher.publisher import CancellationToken, Publisher, RunResult, RunState

__version__ = "0.1.0"
