"""
Conditional Rule Engine.

Evaluates the static rule table of a FormDefinition against one record
snapshot and reports which governed fields are currently required,
visible or hidden. Also provides the clearing step that removes stored
values of hidden fields.

ARCHITECTURAL RULE:
    evaluate() is a pure function of (form, snapshot). It never mutates
    the snapshot. Clearing is a separate, explicit step that returns a
    new snapshot.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from aflm.expressions import (
    BinaryExpression,
    BinaryOperator,
    Expression,
    Literal,
    UnaryExpression,
    UnaryOperator,
    VariableReference,
)
from aflm.model import ActiveRuleSet, Effect, FormDefinition, RepeatableGroup, Rule
from aflm.paths import element_path


class _Scope:
    """Name resolution for conditions: the element first, then the record."""

    def __init__(self, snapshot: Mapping[str, Any], element: Optional[Mapping[str, Any]] = None):
        self.snapshot = snapshot
        self.element = element

    def lookup(self, name: str) -> Any:
        if self.element is not None and name in self.element:
            return self.element[name]
        return self.snapshot.get(name)


_COMPARISONS = {
    BinaryOperator.GREATER_THAN: lambda a, b: a > b,
    BinaryOperator.GREATER_EQUAL: lambda a, b: a >= b,
    BinaryOperator.LESS_THAN: lambda a, b: a < b,
    BinaryOperator.LESS_EQUAL: lambda a, b: a <= b,
}


def evaluate_expression(expr: Expression, snapshot: Mapping[str, Any],
                        element: Optional[Mapping[str, Any]] = None) -> Any:
    """
    Evaluate an expression AST.

    An absent field evaluates to None. Ordering comparisons involving None
    or incompatible types are False rather than errors, so a half-filled
    snapshot never breaks evaluation.
    """
    return _eval(expr, _Scope(snapshot, element))


def _eval(expr: Expression, scope: _Scope) -> Any:
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, VariableReference):
        return scope.lookup(expr.name)
    if isinstance(expr, UnaryExpression):
        if expr.operator == UnaryOperator.NOT:
            return not _eval(expr.operand, scope)
        raise ValueError(f"Unsupported unary operator: {expr.operator}")
    if isinstance(expr, BinaryExpression):
        op = expr.operator
        if op == BinaryOperator.AND:
            return bool(_eval(expr.left, scope)) and bool(_eval(expr.right, scope))
        if op == BinaryOperator.OR:
            return bool(_eval(expr.left, scope)) or bool(_eval(expr.right, scope))
        left = _eval(expr.left, scope)
        right = _eval(expr.right, scope)
        if op == BinaryOperator.EQUALS:
            return left == right
        if op == BinaryOperator.NOT_EQUALS:
            return left != right
        if left is None or right is None:
            return False
        try:
            return _COMPARISONS[op](left, right)
        except TypeError:
            return False
    raise ValueError(f"Unsupported expression type: {type(expr).__name__}")


def _apply_rules(rules: Iterable[Rule], snapshot: Mapping[str, Any],
                 element: Optional[Mapping[str, Any]],
                 required: Set[str], visible: Set[str], hidden: Set[str]) -> None:
    """Collect the effects of every satisfied rule (field ids, unprefixed)."""
    for rule in rules:
        if not evaluate_expression(rule.condition, snapshot, element):
            continue
        for consequence in rule.consequences:
            if consequence.effect == Effect.HIDDEN:
                hidden.add(consequence.field_id)
            else:
                visible.add(consequence.field_id)
                if consequence.effect == Effect.REQUIRED:
                    required.add(consequence.field_id)


def _governed(rules: Iterable[Rule]) -> List[str]:
    seen: List[str] = []
    for rule in rules:
        for fid in rule.field_ids():
            if fid not in seen:
                seen.append(fid)
    return seen


def _resolve(field_ids: Iterable[str], rules: List[Rule], snapshot: Mapping[str, Any],
             element: Optional[Mapping[str, Any]] = None) -> Tuple[Set[str], Set[str], Set[str]]:
    required: Set[str] = set()
    visible: Set[str] = set()
    hidden: Set[str] = set()
    _apply_rules(rules, snapshot, element, required, visible, hidden)
    # A governed field that no satisfied rule shows is hidden.
    hidden |= set(_governed(rules)) - visible
    visible = (set(field_ids) | visible) - hidden
    return required - hidden, visible, hidden


def evaluate(form: FormDefinition, snapshot: Mapping[str, Any]) -> ActiveRuleSet:
    """
    Compute the active rule set for a snapshot.

    Top-level ids are reported as-is; element fields as "group[i].field".
    Unconditionally required fields (FieldDefinition.required) are not part
    of required_field_ids; the format phase of validation owns them.
    """
    required, visible, hidden = _resolve((f.id for f in form.fields), form.rules, snapshot)

    for group in form.groups:
        if group.name in hidden:
            continue
        for index, element in enumerate(snapshot.get(group.name) or []):
            e_required, e_visible, e_hidden = _resolve(
                (f.id for f in group.element_fields), group.element_rules, snapshot, element
            )
            required |= {element_path(group.name, index, fid) for fid in e_required}
            visible |= {element_path(group.name, index, fid) for fid in e_visible}
            hidden |= {element_path(group.name, index, fid) for fid in e_hidden}

    return ActiveRuleSet(
        required_field_ids=frozenset(required),
        hidden_field_ids=frozenset(hidden),
        visible_field_ids=frozenset(visible),
    )


def _clearable(rules: Iterable[Rule]) -> Set[str]:
    return {c.field_id for rule in rules for c in rule.consequences if c.clear_on_exit}


def clear_hidden(form: FormDefinition, snapshot: Dict[str, Any],
                 active: ActiveRuleSet) -> Dict[str, Any]:
    """
    Remove the stored values of hidden fields whose rule clears on exit.

    Returns the same snapshot object when nothing was cleared, otherwise a
    new snapshot; the input is never mutated.
    """
    clearable = _clearable(form.rules)
    doomed = [fid for fid in active.hidden_field_ids if fid in clearable and fid in snapshot]
    new = snapshot
    if doomed:
        new = {k: v for k, v in snapshot.items() if k not in doomed}

    for group in form.groups:
        new = _clear_group(group, new, active)
    return new


def _clear_group(group: RepeatableGroup, snapshot: Dict[str, Any], active: ActiveRuleSet) -> Dict[str, Any]:
    clearable = _clearable(group.element_rules)
    elements = snapshot.get(group.name)
    if not clearable or not elements:
        return snapshot

    changed = False
    cleaned = []
    for index, element in enumerate(elements):
        doomed = [fid for fid in clearable
                  if fid in element and active.is_hidden(element_path(group.name, index, fid))]
        if doomed:
            element = {k: v for k, v in element.items() if k not in doomed}
            changed = True
        cleaned.append(element)
    if not changed:
        return snapshot
    new = dict(snapshot)
    new[group.name] = cleaned
    return new


def settle(form: FormDefinition, snapshot: Dict[str, Any]) -> Tuple[Dict[str, Any], ActiveRuleSet]:
    """
    Evaluate and clear until nothing changes.

    Clearing a field can make it stop satisfying another rule's condition,
    so a field that depends on a cleared trigger is cleared as well. Each
    pass removes at least one key, so the loop is bounded by the number
    of stored values.
    """
    active = evaluate(form, snapshot)
    while True:
        cleared = clear_hidden(form, snapshot, active)
        if cleared is snapshot:
            return snapshot, active
        snapshot = cleared
        active = evaluate(form, snapshot)
