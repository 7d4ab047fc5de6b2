"""Tests for agentflow.agents.selector - the six-step selection order"""

import pytest

from agentflow.agents import AgentDefinition, AgentRegistry, AgentRole, AgentSelector
from agentflow.errors import ConfigurationError
from agentflow.rules import DefaultRule, KeywordsRule, RegexRule


def _agent(name, priority=999, rule=None, role=None, description=""):
    return AgentDefinition(
        name=name,
        description=description,
        should_use=rule if rule is not None else KeywordsRule([]),
        priority=priority,
        role=role,
    )


def _selector(*agents):
    registry = AgentRegistry()
    registry.reload(agents)
    return AgentSelector(registry)


@pytest.fixture
def selector():
    return _selector(
        _agent("Code Analyzer", 5, KeywordsRule(["code", "script"])),
        _agent("Translator", 10, KeywordsRule(["translate"])),
        _agent("Bug Fixer", 1, RegexRule(r"\bbug\b")),
        _agent("General Assistant", 999, DefaultRule()),
    )


# =========================================================================
# Creation shortcut and priority scan
# =========================================================================


class TestSelectionOrder:

    def test_priority_wins(self, selector):
        # Both Bug Fixer (1) and Code Analyzer (5) match
        assert selector.select("there is a bug in my code").name == "Bug Fixer"

    def test_creation_intent_overrides_priority(self, selector):
        assert selector.select("create code for a bug tracker").name == "Code Analyzer"

    def test_creation_intent_requires_rule_match(self, selector):
        assert selector.select("create a new bug report").name == "Bug Fixer"

    def test_priority_scan(self, selector):
        assert selector.select("translate this please").name == "Translator"

    def test_default_rule_catches_rest(self, selector):
        assert selector.select("what's the weather?").name == "General Assistant"

    def test_main_selector_excluded_from_scan(self):
        selector = _selector(
            _agent("Router", 0, DefaultRule(), role=AgentRole.MAIN_SELECTOR),
            _agent("Translator", 10, KeywordsRule(["translate"])),
        )
        assert selector.select("translate this").name == "Translator"

    def test_coder_or_general(self):
        selector = _selector(
            _agent("Coder", 1, KeywordsRule(["code"])),
            _agent("General", 999, DefaultRule()),
        )
        assert selector.select("fix this code").name == "Coder"
        assert selector.select("hi").name == "General"

    def test_only_low_precedence_match(self):
        selector = _selector(
            _agent("Five", 5, KeywordsRule(["five"])),
            _agent("One", 1, KeywordsRule(["one"])),
            _agent("Last", 999, KeywordsRule(["last"])),
        )
        assert selector.registry.get_all_agent_names() == ["One", "Five", "Last"]
        assert selector.select("the last one standing").name == "One"
        assert selector.select("at last").name == "Last"

    def test_deterministic(self, selector):
        picks = {selector.select("fix the bug").name for _ in range(5)}
        assert picks == {"Bug Fixer"}

    def test_explicit_snapshot(self, selector):
        other = AgentRegistry()
        snapshot = other.reload([_agent("Only", 1, DefaultRule())])
        assert selector.select("anything", snapshot=snapshot).name == "Only"


# =========================================================================
# Domain terms and fallbacks
# =========================================================================


class TestFallbacks:

    def test_domain_terms_match_description(self):
        selector = _selector(
            _agent("Files Agent", 20, KeywordsRule(["zzz"]), role=AgentRole.AGENT,
                   description="Works with files and folders"),
            _agent("General Assistant", 999, KeywordsRule([])),
        )
        assert selector.select("open that file").name == "Files Agent"

    def test_domain_terms_match_rule(self):
        selector = _selector(
            _agent("Data Agent", 20, RegexRule("^csv$"), role=AgentRole.ORCHESTRATOR),
            _agent("General Assistant", 999, KeywordsRule([])),
        )
        # The anchored rule rejects the message but accepts the bare domain term
        assert selector.select("load this CSV").name == "Data Agent"

    def test_domain_terms_ignore_roleless_agents(self):
        selector = _selector(
            _agent("Files Agent", 20, KeywordsRule(["zzz"]), description="files"),
            _agent("General Assistant", 999, KeywordsRule([])),
        )
        assert selector.select("open that file").name == "General Assistant"

    def test_fallback_agent(self):
        selector = _selector(
            _agent("Translator", 10, KeywordsRule(["translate"])),
            _agent("General Assistant", 50, KeywordsRule([])),
        )
        assert selector.select("hello").name == "General Assistant"

    def test_main_selector_when_no_fallback(self):
        selector = _selector(
            _agent("Translator", 10, KeywordsRule(["translate"])),
            _agent("Router", 0, KeywordsRule([]), role=AgentRole.MAIN_SELECTOR),
        )
        assert selector.select("hello").name == "Router"

    def test_last_agent_as_final_resort(self):
        selector = _selector(
            _agent("A", 1, KeywordsRule(["a-only"])),
            _agent("Z", 50, KeywordsRule(["z-only"])),
        )
        assert selector.select("hello").name == "Z"

    def test_empty_registry_raises(self):
        selector = AgentSelector(AgentRegistry())
        with pytest.raises(ConfigurationError, match="No agents configured"):
            selector.select("hello")
