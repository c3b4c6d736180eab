"""Label assignment - applies validated labels to an issue."""

import structlog

from issue_triage.config.taxonomy import LabelTaxonomy
from issue_triage.engine.stages.base import TriageStage
from issue_triage.utils.retry import retry_with_backoff

log = structlog.get_logger(__name__)


def validate_labels(recommended: list[str], taxonomy: LabelTaxonomy, max_labels: int = 0) -> list[str]:
    """Filter recommended labels down to ones the taxonomy allows.

    Order is preserved and repeats are dropped. For exclusive categories
    (e.g. priority) only the first recommended label is kept. A positive
    ``max_labels`` caps the result.

    Example:
        >>> validate_labels(["bug", "made-up", "p1", "p2"], LabelTaxonomy.default())
        ['bug', 'p1']
    """
    valid: list[str] = []
    invalid: list[str] = []
    exclusive_seen: set[str] = set()

    for label in recommended:
        if label not in taxonomy:
            invalid.append(label)
            continue
        if label in valid:
            continue

        category = taxonomy.category_of(label)
        if category and taxonomy.is_exclusive(category):
            if category in exclusive_seen:
                log.warning("exclusive_label_dropped", label=label, category=category)
                continue
            exclusive_seen.add(category)
        valid.append(label)

    if invalid:
        log.warning("invalid_labels_filtered", labels=invalid)

    if max_labels > 0 and len(valid) > max_labels:
        log.info("labels_capped", dropped=valid[max_labels:], max_labels=max_labels)
        valid = valid[:max_labels]
    return valid


class LabelAssigner(TriageStage):
    """Apply classification labels, or the duplicate label, to an issue."""

    async def assign_labels(self, issue_number: int, labels: list[str], taxonomy: LabelTaxonomy) -> bool:
        """Add validated labels plus the pending-triage label.

        Returns:
            False if the tracker reports the issue without some of the
            labels after the update.

        Raises:
            Exception: The provider failure once retries are exhausted
        """
        pending = self.settings.labels.pending_triage
        valid = validate_labels(labels, taxonomy, self.settings.labels.max_labels)
        to_add = list(dict.fromkeys([*valid, pending]))

        log.info("assigning_labels", issue=issue_number, labels=to_add)

        async def add() -> list[str]:
            return await self.git.add_labels(issue_number, to_add)

        applied = await retry_with_backoff(add, self.retry_policy, operation_name="add_labels")

        missing = [label for label in to_add if label not in applied]
        if missing:
            log.warning("labels_not_applied", issue=issue_number, missing=missing)
            return False

        log.info("labels_assigned", issue=issue_number, labels=to_add)
        return True

    async def add_duplicate_label(self, issue_number: int) -> bool:
        """Mark the issue as a duplicate and drop pending-triage.

        Removing pending-triage is best-effort; the issue may not carry it.
        """
        duplicate = self.settings.labels.duplicate
        pending = self.settings.labels.pending_triage

        async def add() -> list[str]:
            return await self.git.add_labels(issue_number, [duplicate])

        await retry_with_backoff(add, self.retry_policy, operation_name="add_duplicate_label")
        log.info("duplicate_label_added", issue=issue_number)

        async def remove() -> bool:
            return await self.git.remove_label(issue_number, pending)

        try:
            removed = await retry_with_backoff(remove, self.retry_policy, operation_name="remove_pending_label")
        except Exception as e:
            log.info("pending_label_not_removed", issue=issue_number, error=str(e))
        else:
            log.debug("pending_label_removed", issue=issue_number, removed=removed)
        return True
