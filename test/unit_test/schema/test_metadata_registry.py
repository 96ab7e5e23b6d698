"""Unit tests for the metadata registry."""

import pytest

from typed_agent.schema.metadata import MetadataRegistry, SchemaOptions
from typed_agent.schema.rules import Rule, RuleKind


class Owner:
    """Declaring type used as registry key."""


class TestMetadataRegistryRegistration:
    """Test property registration and ordering."""

    def test_register_property_keeps_first_seen_order(self):
        """Test that properties keep the order they were first registered in."""
        registry = MetadataRegistry()
        registry.register_property(Owner, "b")
        registry.register_property(Owner, "a")
        registry.register_property(Owner, "b")

        record = registry.get_record(Owner)
        assert record.property_names() == ["b", "a"]

    def test_setters_register_implicitly(self):
        """Test that setting metadata registers the property."""
        registry = MetadataRegistry()
        registry.set_description(Owner, "name", "The name")
        registry.set_optional(Owner, "age")

        record = registry.get_record(Owner)
        assert record.property_names() == ["name", "age"]
        assert record.properties["name"].description == "The name"
        assert record.properties["age"].optional is True

    def test_rules_accumulate_in_order(self):
        """Test that rules are appended, never overwritten."""
        registry = MetadataRegistry()
        registry.add_validation_rule(Owner, "name", Rule(RuleKind.min, (2,)))
        registry.add_validation_rule(Owner, "name", Rule(RuleKind.max, (5,)))

        rules = registry.get_record(Owner).properties["name"].rules
        assert [rule.kind for rule in rules] == [RuleKind.min, RuleKind.max]

    def test_last_write_wins_for_scalar_metadata(self):
        """Test that description and example are replaced by later writes."""
        registry = MetadataRegistry()
        registry.set_description(Owner, "name", "first")
        registry.set_description(Owner, "name", "second")
        registry.set_example(Owner, "name", "x")
        registry.set_example(Owner, "name", "y")

        meta = registry.get_record(Owner).properties["name"]
        assert meta.description == "second"
        assert meta.example == "y"

    def test_schema_options(self):
        """Test storing type-level options."""
        registry = MetadataRegistry()
        registry.set_schema_options(Owner, SchemaOptions(description="An owner", deprecated=True))

        options = registry.get_record(Owner).options
        assert options.description == "An owner"
        assert options.deprecated is True


class TestMetadataRegistryReads:
    """Test record snapshots and lookups."""

    def test_get_record_returns_detached_snapshot(self):
        """Test that mutating a snapshot does not change the registry."""
        registry = MetadataRegistry()
        registry.add_validation_rule(Owner, "name", Rule(RuleKind.email))

        snapshot = registry.get_record(Owner)
        snapshot.properties["name"].rules.append(Rule(RuleKind.url))
        snapshot.properties["other"] = snapshot.properties["name"]

        fresh = registry.get_record(Owner)
        assert [rule.kind for rule in fresh.properties["name"].rules] == [RuleKind.email]
        assert fresh.property_names() == ["name"]

    def test_get_record_unknown_type_raises(self):
        """Test that reading an unregistered type raises KeyError."""
        registry = MetadataRegistry()

        with pytest.raises(KeyError, match="Owner"):
            registry.get_record(Owner)

    def test_has_record_and_clear(self):
        """Test has_record before and after clearing."""
        registry = MetadataRegistry()
        registry.register_property(Owner, "name")
        assert registry.has_record(Owner)

        registry.clear(Owner)
        assert not registry.has_record(Owner)

    def test_records_are_held_weakly(self):
        """Test that classes created at runtime do not stay registered forever."""
        import gc

        registry = MetadataRegistry()
        temporary = type("Temporary", (), {})
        registry.register_property(temporary, "name")
        assert registry.has_record(temporary)

        del temporary
        gc.collect()
        assert len(registry._records) == 0
