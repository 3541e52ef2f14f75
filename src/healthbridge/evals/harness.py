"""Declarative conformance checks with a release rollback flag.

Each task pairs a rule with the boolean it is expected to produce against a
fixed payload. Rules are written ``kind:argument``:

``contains:TEXT``
    The payload contains TEXT (case-sensitive).
``regex:PATTERN``
    ``re.search`` finds PATTERN, with ``^``/``$`` matching at segment boundaries.
``field:SEG-N=VALUE`` / ``field:SEG-N.C=VALUE``
    HL7 field N (or its component C) of the first SEG segment equals VALUE.
``count:SEG>=N``
    The number of SEG segments compares to N (``>=``, ``<=``, ``>``, ``<``, ``==``).

New kinds are added with :func:`register_rule_kind`. A factory receives the
argument text and returns a predicate over the payload; it raises
:class:`RuleSyntaxError` when the argument cannot be compiled.
"""

import operator
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from ..core.errors import ConfigurationError
from ..ingestion.hl7 import LINE_BREAK, parse_message

logger = structlog.get_logger()

RulePredicate = Callable[[str], bool]
RuleFactory = Callable[[str], RulePredicate]

RULE_PATTERN = re.compile(r"^([A-Za-z][\w-]*):(.+)$", re.DOTALL)
FIELD_ARGUMENT = re.compile(r"^([A-Z][A-Z0-9]{2})-(\d+)(?:\.(\d+))?=(.*)$", re.DOTALL)
COUNT_ARGUMENT = re.compile(r"^([A-Z][A-Z0-9]{2})\s*(>=|<=|==|>|<)\s*(\d+)$")

COMPARATORS = {
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
    ">": operator.gt,
    "<": operator.lt,
}


class RuleSyntaxError(ValueError):
    """Raised when a rule cannot be compiled."""


class EvalTask(BaseModel):
    name: str
    rule: str
    expect: bool


@dataclass
class TaskOutcome:
    task: EvalTask
    actual: bool
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.error is None and self.actual == self.task.expect


@dataclass
class EvalReport:
    outcomes: List[TaskOutcome] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for o in self.outcomes if o.passed)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.passed

    @property
    def rollback(self) -> bool:
        return self.failed > 0

    def summary(self) -> str:
        return f"PASS={self.passed} FAIL={self.failed} rollback={str(self.rollback).lower()}"


def _contains(argument: str) -> RulePredicate:
    return lambda payload: argument in payload


def _regex(argument: str) -> RulePredicate:
    try:
        pattern = re.compile(argument, re.MULTILINE)
    except re.error as e:
        raise RuleSyntaxError(f"Invalid regex {argument!r}: {e}") from e
    return lambda payload: pattern.search(LINE_BREAK.sub("\n", payload)) is not None


def _field_equals(argument: str) -> RulePredicate:
    match = FIELD_ARGUMENT.match(argument)
    if not match:
        raise RuleSyntaxError(f"Expected SEG-N[.C]=VALUE, got {argument!r}")
    segment, index, component, expected = match.groups()
    index = int(index)
    component = int(component) if component else None

    def predicate(payload: str) -> bool:
        lookup = parse_message(payload).lookup(segment, index, component)
        return lookup.present and lookup.value == expected

    return predicate


def _segment_count(argument: str) -> RulePredicate:
    match = COUNT_ARGUMENT.match(argument.strip())
    if not match:
        raise RuleSyntaxError(f"Expected SEG<op>N, got {argument!r}")
    segment, op, threshold = match.groups()
    compare = COMPARATORS[op]
    threshold = int(threshold)
    return lambda payload: compare(parse_message(payload).count(segment), threshold)


_RULE_KINDS: Dict[str, RuleFactory] = {
    "contains": _contains,
    "regex": _regex,
    "field": _field_equals,
    "count": _segment_count,
}


def register_rule_kind(kind: str, factory: RuleFactory) -> None:
    """Register a rule kind; replaces any existing factory for ``kind``."""
    _RULE_KINDS[kind.lower()] = factory


def compile_rule(rule: str) -> RulePredicate:
    """Compile ``kind:argument`` into a predicate over the payload."""
    match = RULE_PATTERN.match(rule)
    if not match:
        raise RuleSyntaxError(f"Rule must look like kind:argument, got {rule!r}")
    kind, argument = match.groups()
    factory = _RULE_KINDS.get(kind.lower())
    if factory is None:
        raise RuleSyntaxError(f"Unknown rule kind: {kind}")
    return factory(argument)


def load_tasks(tasks_path: str) -> List[EvalTask]:
    """Load ``{tasks: [{name, rule, expect}, ...]}`` from YAML, keeping order."""
    try:
        with open(tasks_path, 'r', encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read eval tasks {tasks_path}: {e}") from e

    raw_tasks = document.get("tasks") if isinstance(document, dict) else None
    if not isinstance(raw_tasks, list):
        raise ConfigurationError(f"Eval tasks file {tasks_path} must contain a 'tasks' list")

    try:
        return [EvalTask(**task) for task in raw_tasks]
    except (TypeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid eval task in {tasks_path}: {e}") from e


class EvalHarness:
    """Runs eval tasks against a payload and decides whether to roll back."""

    def evaluate_task(self, task: EvalTask, payload: str) -> TaskOutcome:
        try:
            predicate = compile_rule(task.rule)
        except RuleSyntaxError as e:
            logger.error(f"Task {task.name} has an invalid rule: {e}")
            return TaskOutcome(task=task, actual=False, error=str(e))

        try:
            actual = predicate(payload)
        except Exception as e:
            logger.error(f"Task {task.name} failed to evaluate: {e}")
            return TaskOutcome(task=task, actual=False, error=str(e))
        return TaskOutcome(task=task, actual=bool(actual))

    def run(self, tasks: Iterable[EvalTask], payload: str) -> EvalReport:
        report = EvalReport()
        for task in tasks:
            outcome = self.evaluate_task(task, payload)
            report.outcomes.append(outcome)
            logger.info(
                f"Task: {task.name} (rule={task.rule}, expect={str(task.expect).lower()}) => "
                f"{'PASS' if outcome.passed else 'FAIL'}"
            )

        logger.info(f"Summary: {report.summary()}")
        return report

    def run_files(self, tasks_path: str, payload_path: str) -> EvalReport:
        tasks = load_tasks(tasks_path)
        try:
            payload = Path(payload_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Cannot read eval payload {payload_path}: {e}") from e
        return self.run(tasks, payload)
