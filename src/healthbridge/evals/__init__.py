"""Eval harness for release gating."""

from .harness import EvalHarness, EvalReport, EvalTask, load_tasks, register_rule_kind

__all__ = ["EvalHarness", "EvalReport", "EvalTask", "load_tasks", "register_rule_kind"]
