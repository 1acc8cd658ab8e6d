"""Feature file reader.

Parses a Gherkin feature file with the Cucumber reference parser and keeps
just enough of it to drive a multi-device run: the scenarios and the tags
attached to each of them. Steps are left to the automation command.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gherkin.errors import ParserError
from gherkin.parser import Parser
from gherkin.token_scanner import TokenScanner

# Tag naming the actor (device session) a scenario runs as
ACTOR_TAG_PATTERN = re.compile(r"^@user\d+$")


@dataclass
class Scenario:
    """One scenario (or scenario outline) of a feature file."""

    name: str
    line: int
    tags: list[str] = field(default_factory=list)
    rule: str | None = None

    @property
    def actor_tags(self) -> list[str]:
        return [tag for tag in self.tags if ACTOR_TAG_PATTERN.match(tag)]

    @property
    def actor_tag(self) -> str | None:
        actor_tags = self.actor_tags
        return actor_tags[0] if len(actor_tags) == 1 else None


def _tag_names(node: dict[str, Any]) -> list[str]:
    return [tag["name"] for tag in node.get("tags", [])]


@dataclass
class FeatureFile:
    """Parsed feature file."""

    file_path: Path | None = None
    name: str | None = None
    tags: list[str] = field(default_factory=list)
    scenarios: list[Scenario] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)

    @classmethod
    def load(cls, path: str | Path) -> FeatureFile:
        """Read and parse a feature file.

        Raises:
            OSError: If the file cannot be read
        """
        path = Path(path)
        return cls.parse(path.read_text(encoding="utf-8"), file_path=path)

    @classmethod
    def parse(cls, text: str, file_path: Path | None = None) -> FeatureFile:
        """Parse feature file text.

        Gherkin errors do not raise; they are kept in parse_errors and make
        the file invalid.
        """
        feature = cls(file_path=file_path)
        try:
            document = Parser().parse(TokenScanner(text))
        except ParserError as e:
            errors = getattr(e, "errors", None) or [e]
            feature.parse_errors = [str(error) for error in errors]
            return feature

        node = document.get("feature")
        if not node:
            return feature

        feature.name = node["name"]
        feature.tags = _tag_names(node)
        for child in node.get("children", []):
            if "scenario" in child:
                feature._add_scenario(child["scenario"], feature.tags)
            elif "rule" in child:
                rule = child["rule"]
                inherited = feature.tags + _tag_names(rule)
                for rule_child in rule.get("children", []):
                    if "scenario" in rule_child:
                        feature._add_scenario(rule_child["scenario"], inherited, rule["name"])
        return feature

    def _add_scenario(
        self, node: dict[str, Any], inherited: list[str], rule: str | None = None
    ) -> None:
        # Examples tags select rows, they do not belong to the scenario
        self.scenarios.append(
            Scenario(
                name=node["name"],
                line=node["location"]["line"],
                tags=inherited + _tag_names(node),
                rule=rule,
            )
        )

    def syntax_problems(self) -> list[str]:
        """Human-readable reasons the file cannot be run, empty if valid."""
        if self.parse_errors:
            return [f"Invalid Gherkin: {error}" for error in self.parse_errors]
        if self.name is None:
            return ["Missing 'Feature:' declaration"]

        problems = []
        seen: dict[str, Scenario] = {}
        for scenario in self.scenarios:
            actor_tags = scenario.actor_tags
            if not actor_tags:
                problems.append(f"Line {scenario.line}: scenario '{scenario.name}' has no @user tag")
            elif len(actor_tags) > 1:
                problems.append(
                    f"Line {scenario.line}: scenario '{scenario.name}' has several @user tags "
                    f"({', '.join(actor_tags)})"
                )
            elif actor_tags[0] in seen:
                other = seen[actor_tags[0]]
                problems.append(
                    f"Line {scenario.line}: tag {actor_tags[0]} already used by "
                    f"scenario '{other.name}' (line {other.line})"
                )
            else:
                seen[actor_tags[0]] = scenario
        return problems

    def has_right_syntax(self) -> bool:
        """Whether every scenario carries exactly one unique @user tag."""
        return not self.syntax_problems()
