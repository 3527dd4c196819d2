"""Configuration — rule actions, output, database backend, strict mode.

Settings come from ``slowpath.yaml`` (or ``.slowpath.yaml``) with environment
overrides. Malformed settings raise :class:`ConfigurationError`; unknown rule
ids are ignored with a warning.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from slowpath.analyzer.models import Severity
from slowpath.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("slowpath.yaml", ".slowpath.yaml")

OUTPUT_FORMATS = ("console", "json", "sarif")
COLOR_MODES = ("auto", "always", "never")
ORM_BACKENDS = ("django", "sqlalchemy", "dbapi", "asyncpg")

# Rules precise enough to run in strict mode
DEFAULT_STRICT_RULES = (
    "async-block-in-async",
    "lock-across-await",
    "regex-in-loop",
    "collect-then-iterate",
    "pop-front-in-loop",
)


class RuleAction(enum.Enum):
    """Per-rule override from configuration."""

    DENY = "deny"
    WARN = "warn"
    ALLOW = "allow"

    @property
    def severity(self) -> Severity | None:
        """Severity this action maps to; ``None`` means drop the diagnostic."""
        if self is RuleAction.DENY:
            return Severity.ERROR
        if self is RuleAction.WARN:
            return Severity.WARNING
        return None


@dataclass(frozen=True)
class OutputConfig:
    format: str = "console"
    color: str = "auto"


@dataclass(frozen=True)
class DatabaseConfig:
    orm: str | None = None


@dataclass(frozen=True)
class SlowpathConfig:
    """Resolved settings for one run. Immutable and safe to share with workers."""

    rules: dict[str, RuleAction] = field(default_factory=dict)
    output: OutputConfig = field(default_factory=OutputConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    strict: bool = False
    strict_rules: tuple[str, ...] = DEFAULT_STRICT_RULES
    fail_on: Severity | None = Severity.ERROR
    min_severity: Severity = Severity.INFO

    def action_for(self, rule_id: str) -> RuleAction | None:
        return self.rules.get(rule_id)

    def is_allowed(self, rule_id: str) -> bool:
        return self.rules.get(rule_id) is RuleAction.ALLOW

    def with_overrides(self, **changes) -> SlowpathConfig:
        return replace(self, **changes)

    @classmethod
    def load(cls, path: str | Path | None = None, search_dir: str | Path = ".") -> SlowpathConfig:
        """Load config from an explicit file, or the first config file found in
        ``search_dir``, then apply environment overrides."""
        if path is None:
            path = find_config_file(search_dir)
        config = load_config(path) if path is not None else cls()
        return _apply_env(config)


def find_config_file(directory: str | Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = Path(directory) / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: str | Path) -> SlowpathConfig:
    """Load a config from a YAML file path."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e
    return load_config_from_string(text, source=str(path))


def load_config_from_string(text: str, source: str = "<string>") -> SlowpathConfig:
    """Parse a YAML string into a SlowpathConfig."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {source}: {e}") from e
    if data is None:
        return SlowpathConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(f"{source} must contain a mapping")
    return _build_config(data)


def _build_config(data: dict) -> SlowpathConfig:
    unknown_keys = set(data) - {
        "rules",
        "output",
        "database",
        "strict",
        "strict_rules",
        "fail_on",
        "min_severity",
    }
    for key in sorted(unknown_keys):
        logger.warning("Ignoring unknown configuration key: %s", key)

    output_data = _section(data, "output")
    output = OutputConfig(
        format=_choice(output_data.get("format", "console"), OUTPUT_FORMATS, "output.format"),
        color=_choice(output_data.get("color", "auto"), COLOR_MODES, "output.color"),
    )

    database_data = _section(data, "database")
    orm = database_data.get("orm")
    database = DatabaseConfig(
        orm=_choice(orm, ORM_BACKENDS, "database.orm") if orm is not None else None,
    )

    strict = data.get("strict", False)
    if not isinstance(strict, bool):
        raise ConfigurationError("strict must be true or false")

    strict_rules = data.get("strict_rules", list(DEFAULT_STRICT_RULES))
    if isinstance(strict_rules, str):
        strict_rules = [strict_rules]
    if not isinstance(strict_rules, list):
        raise ConfigurationError("strict_rules must be a list of rule ids")

    return SlowpathConfig(
        rules=_parse_rules(data.get("rules", {})),
        output=output,
        database=database,
        strict=strict,
        strict_rules=tuple(_known_rule_ids([str(r) for r in strict_rules], "strict_rules")),
        fail_on=_severity_or_none(data.get("fail_on", "error"), "fail_on"),
        min_severity=_severity_or_none(data.get("min_severity", "info"), "min_severity")
        or Severity.INFO,
    )


def _parse_rules(rules_data) -> dict[str, RuleAction]:
    if rules_data is None:
        return {}
    if not isinstance(rules_data, dict):
        raise ConfigurationError("rules must be a mapping of rule id to deny|warn|allow")

    rules: dict[str, RuleAction] = {}
    for rule_id in _known_rule_ids(list(rules_data), "rules"):
        raw = rules_data[rule_id]
        try:
            rules[rule_id] = RuleAction(str(raw).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"rules.{rule_id}: expected deny, warn or allow, got {raw!r}"
            ) from None
    return rules


def _known_rule_ids(rule_ids: list[str], where: str) -> list[str]:
    from slowpath.rules.registry import has_rule

    known = []
    for rule_id in rule_ids:
        if has_rule(rule_id):
            known.append(rule_id)
        else:
            logger.warning("Ignoring unknown rule id in %s: %s", where, rule_id)
    return known


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"{name} must be a mapping")
    return section


def _choice(value, choices: tuple[str, ...], name: str) -> str:
    text = str(value).strip().lower()
    if text not in choices:
        raise ConfigurationError(f"{name} must be one of {', '.join(choices)}; got {value!r}")
    return text


def _severity_or_none(value, name: str) -> Severity | None:
    if value is None or value is False or str(value).lower() == "never":
        return None
    try:
        return Severity.parse(str(value))
    except ValueError as e:
        raise ConfigurationError(f"{name}: {e}") from None


def _apply_env(config: SlowpathConfig) -> SlowpathConfig:
    env_format = os.environ.get("SLOWPATH_FORMAT")
    if env_format:
        config = replace(
            config,
            output=replace(
                config.output,
                format=_choice(env_format, OUTPUT_FORMATS, "SLOWPATH_FORMAT"),
            ),
        )

    env_strict = os.environ.get("SLOWPATH_STRICT")
    if env_strict:
        config = replace(config, strict=env_strict.lower() in ("1", "true", "yes", "on"))

    env_orm = os.environ.get("SLOWPATH_ORM")
    if env_orm:
        config = replace(
            config,
            database=DatabaseConfig(orm=_choice(env_orm, ORM_BACKENDS, "SLOWPATH_ORM")),
        )

    return config


DEFAULT_CONFIG_YAML = """\
# slowpath configuration

rules:
  # Set rule severity: deny (error), warn (warning), allow (ignore)
  # async-block-in-async: deny
  # lock-across-await: deny
  # copy-in-loop: warn
  # container-build-in-loop: allow

output:
  format: console  # console, json, sarif
  color: auto      # auto, always, never

database:
  # orm: django    # django, sqlalchemy, dbapi, asyncpg

strict: false
fail_on: error
"""
