"""
Form Analyzer: static diagnostics of the rule table.

This module provides lightweight analysis of FormDefinition objects:
    - Field reference inventory (undefined triggers and consequences)
    - Rule sanity (trigger referenced by its own condition)
    - Contradiction detection over the enumerable trigger domains
    - Expression complexity metrics
    - Warning flags for table maintenance risk

IMPORTANT: This is an analysis layer. It does NOT modify the form.
It only produces read-only reports.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from aflm.expressions import BinaryExpression, BinaryOperator, Expression, Literal, UnaryExpression, VariableReference
from aflm.model import Effect, FieldDefinition, FieldType, FormDefinition, Rule
from aflm.rules import evaluate_expression


@dataclass
class ExpressionMetrics:
    """Metrics about a single expression tree."""
    depth: int = 0
    node_count: int = 0
    variable_references: Set[str] = field(default_factory=set)
    # name -> literal values it is compared against
    compared_literals: Dict[str, Set[Any]] = field(default_factory=dict)


def _analyze_expression(expr: Expression | None) -> ExpressionMetrics:
    """Recursively analyze an expression tree."""
    if expr is None:
        return ExpressionMetrics(depth=0, node_count=0)

    metrics = ExpressionMetrics(node_count=1)

    if isinstance(expr, BinaryExpression):
        left = _analyze_expression(expr.left)
        right = _analyze_expression(expr.right)
        metrics.depth = 1 + max(left.depth, right.depth)
        metrics.node_count += left.node_count + right.node_count
        for sub in (left, right):
            metrics.variable_references.update(sub.variable_references)
            for name, values in sub.compared_literals.items():
                metrics.compared_literals.setdefault(name, set()).update(values)
        if expr.operator not in (BinaryOperator.AND, BinaryOperator.OR):
            pairs = ((expr.left, expr.right), (expr.right, expr.left))
            for var, lit in pairs:
                if isinstance(var, VariableReference) and isinstance(lit, Literal):
                    metrics.compared_literals.setdefault(var.name, set()).add(lit.value)

    elif isinstance(expr, UnaryExpression):
        operand = _analyze_expression(expr.operand)
        metrics.depth = 1 + operand.depth
        metrics.node_count += operand.node_count
        metrics.variable_references.update(operand.variable_references)
        metrics.compared_literals.update(operand.compared_literals)

    elif isinstance(expr, VariableReference):
        metrics.variable_references.add(expr.name)

    return metrics


def _domain(fd: Optional[FieldDefinition], literals: Set[Any]) -> Tuple[Any, ...]:
    """Values a trigger can take, for exhaustive enumeration. Always includes None (unset)."""
    if fd is not None and fd.field_type == FieldType.ENUM and fd.options:
        values: List[Any] = list(fd.options)
    elif fd is not None and fd.field_type == FieldType.BOOLEAN:
        values = [True, False]
    else:
        values = sorted(literals, key=repr)
    return tuple(values) + (None,)


def _rule_conflicts(rules: List[Rule], lookup: Callable[[str], Optional[FieldDefinition]],
                    scope: str) -> List[str]:
    by_field: Dict[str, List[Rule]] = {}
    for rule in rules:
        for fid in rule.field_ids():
            bucket = by_field.setdefault(fid, [])
            if rule not in bucket:
                bucket.append(rule)

    conflicts: List[str] = []
    for fid, field_rules in by_field.items():
        effects_declared = {c.effect for r in field_rules for c in r.consequences if c.field_id == fid}
        if Effect.HIDDEN not in effects_declared or effects_declared == {Effect.HIDDEN}:
            continue

        metrics = ExpressionMetrics()
        for rule in field_rules:
            m = _analyze_expression(rule.condition)
            metrics.variable_references.update(m.variable_references)
            for name, values in m.compared_literals.items():
                metrics.compared_literals.setdefault(name, set()).update(values)

        names = sorted(metrics.variable_references)
        domains = [_domain(lookup(n), metrics.compared_literals.get(n, set())) for n in names]
        for combo in itertools.product(*domains):
            state = {n: v for n, v in zip(names, combo) if v is not None}
            effects: Dict[Effect, List[str]] = {}
            for rule in field_rules:
                if evaluate_expression(rule.condition, state):
                    for c in rule.consequences:
                        if c.field_id == fid:
                            effects.setdefault(c.effect, []).append(rule.id)
            shown = [rid for eff, rids in effects.items() if eff != Effect.HIDDEN for rid in rids]
            if shown and Effect.HIDDEN in effects:
                conflicts.append(
                    f"{scope}{fid}: shown by {', '.join(shown)} but hidden by "
                    f"{', '.join(effects[Effect.HIDDEN])} when {state}"
                )
                break
    return conflicts


def find_rule_conflicts(form: FormDefinition) -> List[str]:
    """
    Check that no two rules give contradictory effects on one field.

    For every field that some rule hides and some rule shows, all
    combinations of the trigger values referenced by those rules are
    enumerated (enum options, booleans, compared literals, and unset).
    Returns one message per contradictory field; empty means consistent.
    """
    conflicts = _rule_conflicts(form.rules, form.get_field, "")
    for group in form.groups:
        def lookup(name: str, group=group) -> Optional[FieldDefinition]:
            return group.get_field(name) or form.get_field(name)

        conflicts += _rule_conflicts(group.element_rules, lookup, f"{group.name}[*].")
    return conflicts


@dataclass
class FormReport:
    """Analysis report for a form definition."""

    form_name: str
    total_fields: int = 0
    total_rules: int = 0
    total_groups: int = 0
    total_element_rules: int = 0
    governed_fields: int = 0

    # Reference checks
    undefined_references: Set[str] = field(default_factory=set)
    triggers_not_in_condition: List[str] = field(default_factory=list)
    required_and_governed: List[str] = field(default_factory=list)
    groups_without_field: List[str] = field(default_factory=list)

    # Contradictions
    conflicts: List[str] = field(default_factory=list)

    # Expression complexity
    max_expression_depth: int = 0
    total_expression_nodes: int = 0

    warnings: List[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.conflicts and not self.undefined_references

    def add_warning(self, msg: str) -> None:
        """Add a warning to the report."""
        if msg not in self.warnings:
            self.warnings.append(msg)


def _check_rules(rules: List[Rule], declared: Set[str], lookup: Callable[[str], Optional[FieldDefinition]],
                 report: FormReport, scope: str) -> None:
    for rule in rules:
        metrics = _analyze_expression(rule.condition)
        report.max_expression_depth = max(report.max_expression_depth, metrics.depth)
        report.total_expression_nodes += metrics.node_count

        if rule.trigger_field not in metrics.variable_references:
            report.triggers_not_in_condition.append(f"{scope}{rule.id}")

        referenced = {rule.trigger_field} | metrics.variable_references | set(rule.field_ids())
        report.undefined_references |= {f"{scope}{name}" for name in referenced - declared}

        for fid in rule.field_ids():
            fd = lookup(fid)
            if fd is not None and fd.required:
                report.required_and_governed.append(f"{scope}{fid}")


def analyze_form(form: FormDefinition) -> FormReport:
    """
    Perform static analysis of a FormDefinition.

    Checks for:
    - Rules referencing undeclared fields
    - Rules whose condition ignores their own trigger field
    - Governed fields that are also unconditionally required
    - GROUP fields without a matching repeatable group (and vice versa)
    - Contradictory rule effects

    Returns a FormReport with metrics and warnings.
    """
    report = FormReport(form_name=form.name)
    report.total_fields = len(form.fields)
    report.total_rules = len(form.rules)
    report.total_groups = len(form.groups)
    report.total_element_rules = sum(len(g.element_rules) for g in form.groups)
    report.governed_fields = len(form.governed_field_ids())

    declared = {f.id for f in form.fields}
    _check_rules(form.rules, declared, form.get_field, report, "")

    for group in form.groups:
        element_declared = declared | {f.id for f in group.element_fields}

        def lookup(name: str, group=group) -> Optional[FieldDefinition]:
            return group.get_field(name) or form.get_field(name)

        _check_rules(group.element_rules, element_declared, lookup, report, f"{group.name}[*].")
        fd = form.get_field(group.name)
        if fd is None or fd.field_type != FieldType.GROUP:
            report.groups_without_field.append(group.name)
        if group.trigger_field and group.trigger_field not in declared:
            report.undefined_references.add(group.trigger_field)

    for fd in form.fields:
        if fd.field_type == FieldType.GROUP and form.get_group(fd.id) is None:
            report.groups_without_field.append(fd.id)

    report.conflicts = find_rule_conflicts(form)

    if report.undefined_references:
        report.add_warning(
            f"Undefined field references: {', '.join(sorted(report.undefined_references))}"
        )
    if report.triggers_not_in_condition:
        report.add_warning(
            f"Rules not referencing their trigger: {', '.join(report.triggers_not_in_condition)}"
        )
    if report.required_and_governed:
        report.add_warning(
            f"Governed fields marked always-required: {', '.join(report.required_and_governed)}"
        )
    if report.groups_without_field:
        report.add_warning(
            f"Group/field mismatch: {', '.join(sorted(set(report.groups_without_field)))}"
        )
    for conflict in report.conflicts:
        report.add_warning(f"Rule conflict: {conflict}")

    return report
