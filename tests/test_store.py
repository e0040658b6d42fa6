"""
Unit Tests for Template and Client Configuration Stores
"""

import json
import threading
from decimal import Decimal

import pytest

from delivery_pricing.defaults import STANDARD_TEMPLATE_ID, build_default_stores
from delivery_pricing.errors import ConfigurationError, DuplicateRuleError
from delivery_pricing.models import ClientConfiguration, PricingRule, PricingTemplate, RuleType
from delivery_pricing.store import (
    InMemoryClientConfigStore,
    InMemoryTemplateStore,
    load_seed,
    load_seed_file,
)


def make_rule(rule_id, rule_name, base_amount=None, template_id="t", rule_type=RuleType.CUSTOMER_CHARGE):
    return PricingRule(
        id=rule_id,
        template_id=template_id,
        rule_type=rule_type,
        rule_name=rule_name,
        base_amount=base_amount,
    )


@pytest.fixture
def store():
    return InMemoryTemplateStore()


@pytest.fixture
def template():
    return PricingTemplate(id="t", name="Test")


class TestVersionedPublish:
    """Every write produces a new immutable snapshot."""

    def test_first_publish_is_version_one(self, store, template):
        snapshot = store.publish(template, [make_rule("a", "bridge_toll")])
        assert snapshot.version == 1
        assert store.get_template("t") is snapshot

    def test_republish_increments_version(self, store, template):
        store.publish(template, [make_rule("a", "bridge_toll")])
        snapshot = store.publish(template, [make_rule("a", "bridge_toll", Decimal("9"))])
        assert snapshot.version == 2
        assert snapshot.rules[0].base_amount == Decimal("9")

    def test_missing_template_is_none(self, store):
        assert store.get_template("nope") is None

    def test_rejected_publish_leaves_previous_snapshot(self, store, template):
        before = store.publish(template, [make_rule("a", "bridge_toll")])
        with pytest.raises(DuplicateRuleError):
            store.publish(template, [make_rule("a", "bridge_toll"), make_rule("b", "bridge_toll")])
        assert store.get_template("t") is before

    def test_set_active(self, store, template):
        store.publish(template, [make_rule("a", "bridge_toll")])
        snapshot = store.set_active("t", False)
        assert snapshot.version == 2
        assert snapshot.template.is_active is False
        assert snapshot.rules == store.get_template("t").rules

    def test_upsert_replaces_rule_with_same_id(self, store, template):
        store.publish(template, [make_rule("a", "bridge_toll", Decimal("8"))])
        snapshot = store.upsert_rule("t", make_rule("a", "bridge_toll", Decimal("10")))
        assert len(snapshot.rules) == 1
        assert snapshot.rules[0].base_amount == Decimal("10")

    def test_upsert_adds_new_rule(self, store, template):
        store.publish(template, [make_rule("a", "bridge_toll")])
        snapshot = store.upsert_rule("t", make_rule("b", "extra_stops"))
        assert [r.id for r in snapshot.rules] == ["a", "b"]

    def test_upsert_duplicate_name_rejected(self, store, template):
        store.publish(template, [make_rule("a", "bridge_toll")])
        with pytest.raises(DuplicateRuleError):
            store.upsert_rule("t", make_rule("b", "bridge_toll"))
        assert store.get_template("t").version == 1

    def test_remove_rule(self, store, template):
        store.publish(template, [make_rule("a", "bridge_toll"), make_rule("b", "extra_stops")])
        snapshot = store.remove_rule("t", "a")
        assert [r.id for r in snapshot.rules] == ["b"]

    def test_remove_unknown_rule(self, store, template):
        store.publish(template, [make_rule("a", "bridge_toll")])
        with pytest.raises(ConfigurationError, match="Rule zzz not found"):
            store.remove_rule("t", "zzz")

    def test_write_to_unknown_template(self, store):
        with pytest.raises(ConfigurationError):
            store.set_active("nope", True)

    def test_held_snapshot_is_unaffected_by_later_writes(self, store, template):
        held = store.publish(template, [make_rule("a", "bridge_toll", Decimal("8"))])
        store.upsert_rule("t", make_rule("a", "bridge_toll", Decimal("12")))
        assert held.rules[0].base_amount == Decimal("8")
        assert held.version == 1

    def test_list_templates_sorted_by_id(self):
        template_store, _ = build_default_stores()
        ids = [s.template.id for s in template_store.list_templates()]
        assert ids == ["per-head-specialty", STANDARD_TEMPLATE_ID]


class TestAtomicSwap:
    """Readers see a whole snapshot, never a mix of versions."""

    def test_concurrent_readers_see_consistent_snapshots(self, store, template):
        def rules_for(version):
            amount = Decimal(version)
            return [
                make_rule("a", "tiered_base_fee", amount),
                make_rule("b", "bridge_toll", amount),
                make_rule("c", "extra_stops", amount),
            ]

        store.publish(template, rules_for(1))
        stop = threading.Event()
        mismatches = []

        def reader():
            while not stop.is_set():
                snapshot = store.get_template("t")
                amounts = {r.base_amount for r in snapshot.rules}
                if amounts != {Decimal(snapshot.version)}:
                    mismatches.append(snapshot.version)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for thread in readers:
            thread.start()
        for version in range(2, 200):
            store.publish(template, rules_for(version))
        stop.set()
        for thread in readers:
            thread.join()

        assert mismatches == []
        assert store.get_template("t").version == 199


class TestClientConfigStore:

    def test_put_and_get(self):
        store = InMemoryClientConfigStore()
        config = ClientConfiguration(id="c1", template_id="t", client_id="acme")
        store.put(config)
        assert store.get_client_config("c1") is config
        assert store.get_client_config("c2") is None

    def test_list_by_client(self):
        store = InMemoryClientConfigStore()
        store.put(ClientConfiguration(id="c2", template_id="t", client_id="acme"))
        store.put(ClientConfiguration(id="c1", template_id="t", client_id="acme"))
        store.put(ClientConfiguration(id="c3", template_id="t", client_id="other"))
        assert [c.id for c in store.list_configurations("acme")] == ["c1", "c2"]
        assert len(store.list_configurations()) == 3


SEED = {
    "templates": [
        {
            "id": "seeded",
            "name": "Seeded Template",
            "tiers": [
                {"minHeadCount": 0, "maxHeadCount": 49, "minFoodCost": 0, "maxFoodCost": 499.99,
                 "customerBase": 60, "driverBase": 30},
                {"min_headcount": 50, "min_food_cost": 500, "customer_base": 90, "driver_base": 45},
            ],
            "rules": [
                {"id": "s1", "ruleType": "customer_charge", "ruleName": "tiered_base_fee", "priority": 10},
                {"id": "s2", "rule_type": "driver_payment", "rule_name": "tiered_base_pay", "priority": 10},
                {"id": "s3", "rule_type": "driver_payment", "rule_name": "mileage",
                 "per_unit_amount": "0.40", "threshold_value": 10, "threshold_type": "above"},
            ],
        }
    ],
    "clientConfigurations": [
        {
            "id": "seeded-client",
            "templateId": "seeded",
            "clientName": "Seeded Client",
            "ruleOverrides": {"mileage": 0.55, "tiered_base_fee": {"baseAmount": "70"}},
            "areaRules": [{"areaName": "Napa", "customerPays": 120, "driverGets": 60}],
        }
    ],
}


class TestSeedLoading:

    def test_load_seed(self):
        template_store, client_store = InMemoryTemplateStore(), InMemoryClientConfigStore()
        load_seed(SEED, template_store, client_store)

        snapshot = template_store.get_template("seeded")
        assert snapshot.version == 1
        assert len(snapshot.template.tiers) == 2
        assert snapshot.template.tiers[1].max_headcount is None
        assert snapshot.template.tiers[0].max_food_cost == Decimal("499.99")
        assert {r.template_id for r in snapshot.rules} == {"seeded"}
        assert snapshot.rules[2].per_unit_amount == Decimal("0.40")

        config = client_store.get_client_config("seeded-client")
        assert config.rule_overrides["mileage"].amount == Decimal("0.55")
        assert config.rule_overrides["tiered_base_fee"].base_amount == Decimal("70")
        assert config.area_rules[0].area_name == "Napa"

    def test_load_seed_file(self, tmp_path):
        path = tmp_path / "seed.json"
        path.write_text(json.dumps(SEED))
        template_store, client_store = InMemoryTemplateStore(), InMemoryClientConfigStore()
        load_seed_file(path, template_store, client_store)
        assert template_store.get_template("seeded") is not None

    def test_defective_seed_is_rejected(self):
        seed = {"templates": [{
            "id": "bad", "name": "Bad",
            "rules": [
                {"id": "x", "rule_type": "customer_charge", "rule_name": "tips"},
                {"id": "y", "rule_type": "customer_charge", "rule_name": "tips"},
            ],
        }]}
        template_store = InMemoryTemplateStore()
        with pytest.raises(DuplicateRuleError):
            load_seed(seed, template_store, InMemoryClientConfigStore())
        assert template_store.get_template("bad") is None
