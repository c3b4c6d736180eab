"""Configuration system for the triage pipeline.

This package provides type-safe configuration management using Pydantic,
including settings for the GitHub API, the language-model provider, each
pipeline stage, and the label taxonomy.

Key Components:
    - TriageSettings: Main configuration container with YAML loading support
    - LLMConfig: Language-model provider and per-task model selection
    - DuplicateConfig: Duplicate detection thresholds and paging
    - LabelsConfig: Workflow label names and taxonomy location
    - LabelTaxonomy: The labels the classifier may recommend

Example:
    >>> from issue_triage.config.settings import TriageSettings
    >>> settings = TriageSettings.from_yaml("triage.yaml")
    >>> taxonomy = settings.load_taxonomy()
"""
