"""
Template and Client Configuration Stores

The processor only depends on the abstract store interfaces, so the pure
calculation can be tested without a database. The in-memory stores publish
immutable, versioned snapshots: every write builds a new snapshot and swaps
it in atomically, so a reader always sees either the fully-old or the
fully-new rule set.
"""

import dataclasses
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError
from .models import ClientConfiguration, PricingRule, PricingTemplate
from .validators import TemplateValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateSnapshot:
    """A template and its rules as they were at one version."""

    template: PricingTemplate
    rules: tuple[PricingRule, ...]
    version: int


class TemplateStore(ABC):
    """Read interface the processor loads templates through."""

    @abstractmethod
    def get_template(self, template_id: str) -> TemplateSnapshot | None:
        """Return the current snapshot, or None if the template does not exist."""


class ClientConfigStore(ABC):
    """Read interface the processor loads client configurations through."""

    @abstractmethod
    def get_client_config(self, config_id: str) -> ClientConfiguration | None:
        """Return the configuration, or None if it does not exist."""


class InMemoryTemplateStore(TemplateStore):
    """
    Copy-on-write template store.

    Writers serialize on a lock and replace the whole snapshot map; readers
    never lock and never see a partially applied change.
    """

    def __init__(self, validator: TemplateValidator | None = None):
        self._validator = validator or TemplateValidator()
        self._lock = threading.Lock()
        self._snapshots: dict[str, TemplateSnapshot] = {}

    def get_template(self, template_id: str) -> TemplateSnapshot | None:
        return self._snapshots.get(template_id)

    def list_templates(self) -> list[TemplateSnapshot]:
        snapshots = self._snapshots
        return [snapshots[key] for key in sorted(snapshots)]

    def publish(self, template: PricingTemplate, rules: list[PricingRule] | tuple[PricingRule, ...]) -> TemplateSnapshot:
        """Create or replace a template together with its full rule set."""
        with self._lock:
            current = self._snapshots.get(template.id)
            version = current.version + 1 if current else 1
            return self._swap(template, tuple(rules), version)

    def set_active(self, template_id: str, is_active: bool) -> TemplateSnapshot:
        with self._lock:
            current = self._require(template_id)
            template = dataclasses.replace(current.template, is_active=is_active)
            return self._swap(template, current.rules, current.version + 1)

    def upsert_rule(self, template_id: str, rule: PricingRule) -> TemplateSnapshot:
        """Add a rule, or replace the rule with the same id."""
        with self._lock:
            current = self._require(template_id)
            rules = [r for r in current.rules if r.id != rule.id]
            rules.append(rule)
            return self._swap(current.template, tuple(rules), current.version + 1)

    def remove_rule(self, template_id: str, rule_id: str) -> TemplateSnapshot:
        with self._lock:
            current = self._require(template_id)
            rules = tuple(r for r in current.rules if r.id != rule_id)
            if len(rules) == len(current.rules):
                raise ConfigurationError(f"Rule {rule_id} not found in template {template_id}")
            return self._swap(current.template, rules, current.version + 1)

    def _require(self, template_id: str) -> TemplateSnapshot:
        current = self._snapshots.get(template_id)
        if current is None:
            raise ConfigurationError(f"Template {template_id} not found")
        return current

    def _swap(self, template: PricingTemplate, rules: tuple[PricingRule, ...], version: int) -> TemplateSnapshot:
        # Caller holds the lock. Validation runs before anything becomes visible.
        self._validator.validate(template, rules)
        snapshot = TemplateSnapshot(template=template, rules=rules, version=version)
        snapshots = dict(self._snapshots)
        snapshots[template.id] = snapshot
        self._snapshots = snapshots
        logger.info(
            "Published template %s v%d (%d rules, active=%s)",
            template.id, version, len(rules), template.is_active,
        )
        return snapshot


class InMemoryClientConfigStore(ClientConfigStore):
    """Client configurations keyed by configuration id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._configs: dict[str, ClientConfiguration] = {}

    def get_client_config(self, config_id: str) -> ClientConfiguration | None:
        return self._configs.get(config_id)

    def put(self, config: ClientConfiguration) -> None:
        with self._lock:
            configs = dict(self._configs)
            configs[config.id] = config
            self._configs = configs

    def list_configurations(self, client_id: str | None = None) -> list[ClientConfiguration]:
        configs = self._configs.values()
        if client_id is not None:
            configs = [c for c in configs if c.client_id == client_id]
        return sorted(configs, key=lambda c: c.id)


# =============================================================================
# SEED LOADING
# =============================================================================


def load_seed(data: dict, template_store: InMemoryTemplateStore, client_store: InMemoryClientConfigStore) -> None:
    """
    Load templates and client configurations from a seed document.

    Format:
        {
          "templates": [{"id", "name", "tiers": [...], "rules": [...]}],
          "client_configurations": [{"id", "template_id", ...}]
        }
    """
    for entry in data.get("templates", []):
        template = PricingTemplate.from_dict(entry)
        rules = [PricingRule.from_dict(r, template_id=template.id) for r in entry.get("rules", [])]
        template_store.publish(template, rules)

    configs = data.get("client_configurations", data.get("clientConfigurations", []))
    for entry in configs:
        client_store.put(ClientConfiguration.from_dict(entry))


def load_seed_file(path: str | Path, template_store: InMemoryTemplateStore, client_store: InMemoryClientConfigStore) -> None:
    """Load a JSON seed document from disk."""
    with open(path, "r") as f:
        data = json.load(f)
    load_seed(data, template_store, client_store)
    logger.info("Loaded pricing seed from %s", path)
