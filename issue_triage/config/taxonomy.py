"""
Label taxonomy: the fixed set of labels the classifier may recommend.

The taxonomy is loaded once at process start, either the bundled default or
a YAML file, and is read-only for the rest of the run. Categories marked
``exclusive`` allow at most one label per issue (an issue has one type and
one priority, but may touch several areas).

YAML format::

    categories:
      type:
        exclusive: true
        labels:
          - name: bug
            description: Something isn't working
          - feature
      area:
        labels: [auth, cli, terminal]
"""

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from issue_triage.exceptions import ConfigurationError

log = structlog.get_logger(__name__)


class LabelDefinition(BaseModel):
    """A single label and what it means."""

    name: str = Field(..., min_length=1)
    description: str = ""


class LabelCategory(BaseModel):
    """A group of related labels."""

    description: str = ""
    exclusive: bool = Field(default=False, description="At most one label from this category per issue")
    labels: list[LabelDefinition] = Field(default_factory=list)

    @field_validator("labels", mode="before")
    @classmethod
    def coerce_label_names(cls, value: Any) -> Any:
        """Allow plain strings in place of ``{name: ...}`` mappings."""
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value


class TaxonomyConfig(BaseModel):
    categories: dict[str, LabelCategory]


DEFAULT_TAXONOMY: dict[str, Any] = {
    "categories": {
        "type": {
            "description": "What kind of report this is",
            "exclusive": True,
            "labels": [
                {"name": "bug", "description": "Something isn't working as expected"},
                {"name": "feature", "description": "Request for new functionality"},
                {"name": "enhancement", "description": "Improvement to existing functionality"},
                {"name": "question", "description": "Needs clarification or discussion"},
                {"name": "documentation", "description": "Documentation is missing or wrong"},
            ],
        },
        "priority": {
            "description": "How urgently the issue needs attention",
            "exclusive": True,
            "labels": [
                {"name": "p0", "description": "Critical: data loss, security, or total breakage"},
                {"name": "p1", "description": "High: core workflow broken, no workaround"},
                {"name": "p2", "description": "Medium: degraded experience, workaround exists"},
                {"name": "p3", "description": "Low: cosmetic or nice to have"},
            ],
        },
        "area": {
            "description": "Product area affected",
            "labels": [
                {"name": "auth", "description": "Sign-in, tokens, and account access"},
                {"name": "cli", "description": "Command-line interface"},
                {"name": "ide", "description": "Editor integration"},
                {"name": "terminal", "description": "Integrated terminal"},
                {"name": "ssh", "description": "Remote development over SSH"},
                {"name": "ui", "description": "Visual layout and interaction"},
                {"name": "chat", "description": "Chat panel and conversations"},
                {"name": "extensions", "description": "Extension loading and marketplace"},
                {"name": "performance", "description": "Speed, memory, and CPU usage"},
            ],
        },
        "os": {
            "description": "Operating system where the problem occurs",
            "labels": [
                {"name": "os: windows"},
                {"name": "os: mac"},
                {"name": "os: linux"},
            ],
        },
        "theme": {
            "description": "Cross-cutting themes tracked for planning",
            "labels": [
                {"name": "theme:agent-quality"},
                {"name": "theme:ssh-wsl"},
                {"name": "theme:onboarding"},
            ],
        },
        "workflow": {
            "description": "Labels managed by the triage automation",
            "labels": [
                {"name": "pending-triage", "description": "Awaiting maintainer triage"},
                {"name": "duplicate", "description": "Reported already in another issue"},
                {"name": "needs-more-info", "description": "Reporter needs to add details"},
            ],
        },
    }
}


class LabelTaxonomy:
    """Read-only view of the label taxonomy.

    Example:
        >>> taxonomy = LabelTaxonomy.default()
        >>> "bug" in taxonomy
        True
        >>> taxonomy.category_of("p1")
        'priority'
    """

    def __init__(self, config: TaxonomyConfig) -> None:
        self._categories = dict(config.categories)
        self._label_category: dict[str, str] = {}
        for category_name, category in self._categories.items():
            for label in category.labels:
                self._label_category.setdefault(label.name, category_name)

    @classmethod
    def default(cls) -> "LabelTaxonomy":
        return cls.from_mapping(DEFAULT_TAXONOMY)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "LabelTaxonomy":
        """Build a taxonomy from a parsed mapping.

        Raises:
            ConfigurationError: If the mapping does not describe a taxonomy
        """
        try:
            return cls(TaxonomyConfig.model_validate(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid label taxonomy: {e}") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> "LabelTaxonomy":
        """Load a taxonomy from a YAML file.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        taxonomy_file = Path(path)
        if not taxonomy_file.exists():
            raise ConfigurationError(f"Taxonomy file not found: {path}")

        try:
            data = yaml.safe_load(taxonomy_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError("Taxonomy must be a YAML object, not a list or scalar")

        taxonomy = cls.from_mapping(data)
        log.info("taxonomy_loaded", path=str(path), labels=len(taxonomy))
        return taxonomy

    def __contains__(self, label: object) -> bool:
        return label in self._label_category

    def __len__(self) -> int:
        return len(self._label_category)

    @property
    def categories(self) -> list[str]:
        return list(self._categories)

    def all_labels(self) -> list[str]:
        """Every label name, in category order."""
        return list(self._label_category)

    def category_of(self, label: str) -> str | None:
        return self._label_category.get(label)

    def is_exclusive(self, category: str) -> bool:
        category_config = self._categories.get(category)
        return bool(category_config and category_config.exclusive)

    def description_of(self, label: str) -> str:
        category = self._label_category.get(label)
        if category is None:
            return ""
        for definition in self._categories[category].labels:
            if definition.name == label:
                return definition.description
        return ""

    def to_dict(self) -> dict[str, list[str]]:
        """Category name to label names, as shown to the classifier."""
        return {name: [label.name for label in category.labels] for name, category in self._categories.items()}
