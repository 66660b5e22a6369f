from typing import Literal

from pydantic import BaseModel, Field


class OutputConfig(BaseModel):
    base_dir: str = "output"
    publish_dir: str = "publish"
    fragments_dir: str = "fragments"
    pages_dir: str = "pages"
    report_name: str = "validation.html"
    stylesheet: str = "fhir.css"


class TerminologyConfig(BaseModel):
    enabled: bool = True
    server: str | None = "http://tx.fhir.org/r3"
    timeout: float = Field(default=30.0, gt=0)


class WatchConfig(BaseModel):
    enabled: bool = False
    interval: float = Field(default=5.0, gt=0)
    use_filesystem_events: bool = True
    debounce_seconds: float = Field(default=0.5, ge=0)


class PipelineConfig(BaseModel):
    on_classification_error: Literal["skip", "abort"] = "skip"


class PublisherConfig(BaseModel):
    ig: str | None = None
    spec: str | None = None
    output: OutputConfig = Field(default_factory=OutputConfig)
    terminology: TerminologyConfig = Field(default_factory=TerminologyConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"
