"""Batch-wide parameters: how many users, and how their groups are chosen."""

from typing import List, Tuple

from ..errors import ValidationError
from ..models import GroupAssignmentPlan
from ..prompts import InputProvider


def parse_count(raw: str) -> int:
    """Parse a batch size.  Must be a positive integer; there is no upper bound."""
    text = raw.strip()
    try:
        count = int(text)
    except ValueError:
        raise ValidationError(f"{text!r} is not a whole number") from None
    if count < 1:
        raise ValidationError("the batch must contain at least one user")
    return count


def collect_group_identifiers(input: InputProvider, label: str = "Group") -> Tuple[str, ...]:
    """Read group identifiers one per prompt until a blank entry.

    Identifiers are opaque (name, account name or distinguished name) and
    resolved later by the gateway.  Repeats are dropped case-insensitively;
    order is preserved.  An empty result is valid.
    """
    input.tell("Enter one group per line (name, account name or DN); leave blank to finish.", style="dim")
    groups: List[str] = []
    seen = set()
    while True:
        answer = input.ask(f"{label} {len(groups) + 1}").strip()
        if not answer:
            return tuple(groups)
        key = answer.lower()
        if key in seen:
            input.tell(f"{answer} is already listed.", style="warning")
            continue
        seen.add(key)
        groups.append(answer)


class BatchPlanner:
    """Collects the batch size and the group assignment mode."""

    def __init__(self, input: InputProvider):
        self.input = input

    def plan(self) -> Tuple[int, GroupAssignmentPlan]:
        count = self._ask_count()
        if self.input.confirm("Add every user in this batch to the same groups?", default=True):
            return count, GroupAssignmentPlan.shared(collect_group_identifiers(self.input, "Shared group"))
        return count, GroupAssignmentPlan.per_user()

    def _ask_count(self) -> int:
        while True:
            try:
                return parse_count(self.input.ask("How many users do you want to create?"))
            except ValidationError as exc:
                self.input.tell(f"Invalid batch size: {exc}", style="error")
