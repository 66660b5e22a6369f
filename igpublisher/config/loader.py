"""YAML config loading with env var expansion."""

import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import PublisherConfig

CONFIG_ENV_VAR = "IGPUB_CONFIG"

# ${VAR} or ${VAR:-fallback}
_ENV_REF = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def config_paths(cli_path: str | None = None) -> list[Path]:
    """Candidate config files, highest priority first.

    CLI option, then ``$IGPUB_CONFIG``, then ``./igpublisher.yaml``, then
    ``~/.igpublisher/config.yaml``.
    """
    paths = [Path(p) for p in (cli_path, os.environ.get(CONFIG_ENV_VAR)) if p]
    paths.append(Path("igpublisher.yaml"))
    paths.append(Path.home() / ".igpublisher" / "config.yaml")
    return paths


def _read(path: Path) -> PublisherConfig | None:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if raw is None:
        return None
    try:
        return PublisherConfig.model_validate(_expand_env_vars(raw))
    except ValidationError as e:
        raise ValueError(f"Invalid config in {path}: {e}") from e


def load_config(cli_path: str | None = None) -> PublisherConfig:
    """The first non-empty config file found, or the defaults."""
    for path in config_paths(cli_path):
        if not path.is_file():
            continue
        cfg = _read(path)
        if cfg is not None:
            return cfg
    return PublisherConfig()


def _expand_env_vars(obj: object) -> object:
    """Recursively expand ``${VAR}`` and ``${VAR:-fallback}`` in strings."""
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1)) or (m.group(2) or ""), obj)
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


# Default YAML template for `igpub config init`
DEFAULT_CONFIG_TEMPLATE = """\
# igpublisher.yaml

# Guide control file (JSON with a "source" entry naming the ImplementationGuide)
ig: "ig.json"

# Where the FHIR specification lives relative to the published guide
spec: "http://hl7.org/fhir/STU3"

# Output
output:
  base_dir: "output"
  publish_dir: "publish"       # serialized resources + stylesheet
  fragments_dir: "fragments"   # bare xhtml fragments
  pages_dir: "pages"           # page-wrapped fragments
  report_name: "validation.html"

# Terminology
terminology:
  enabled: true
  server: "http://tx.fhir.org/r3"
  timeout: 30

# Watch mode
watch:
  enabled: false
  interval: 5.0                # seconds between change checks
  use_filesystem_events: true  # wake early when the guide directory changes
  debounce_seconds: 0.5

# Pipeline
pipeline:
  on_classification_error: "skip"   # skip | abort

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
"""
