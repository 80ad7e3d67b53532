"""
Serialization helpers for AFLM objects (FormDefinition, Rule, Expression, etc.).

Provides lossless JSON/YAML round-trip of the static form definition via
an intermediate dict representation. Enums are stored by value, tuples
as lists. Snapshots are plain dicts already and are not handled here.
"""
from __future__ import annotations

import json
from typing import Any, Dict

import yaml

from aflm.model import (
    Consequence,
    Effect,
    FieldCategory,
    FieldDefinition,
    FieldType,
    FormDefinition,
    RepeatableGroup,
    Rule,
)
from aflm.expressions import (
    Expression,
    BinaryExpression,
    VariableReference,
    Literal,
    UnaryExpression,
    BinaryOperator,
    UnaryOperator,
)


def expr_to_dict(expr: Expression | None) -> Any:
    if expr is None:
        return None
    if isinstance(expr, BinaryExpression):
        return {
            "type": "binary",
            "operator": expr.operator.value,
            "left": expr_to_dict(expr.left),
            "right": expr_to_dict(expr.right),
        }
    if isinstance(expr, VariableReference):
        return {"type": "var", "name": expr.name}
    if isinstance(expr, Literal):
        return {"type": "lit", "value": expr.value}
    if isinstance(expr, UnaryExpression):
        return {
            "type": "unary",
            "operator": expr.operator.value,
            "operand": expr_to_dict(expr.operand),
        }
    raise TypeError(f"Unsupported Expression type: {type(expr)}")


def expr_from_dict(d: Any) -> Expression | None:
    if d is None:
        return None
    t = d.get("type")
    if t == "binary":
        op = BinaryOperator(d["operator"])
        left = expr_from_dict(d["left"])
        right = expr_from_dict(d["right"])
        return BinaryExpression(operator=op, left=left, right=right)
    if t == "var":
        return VariableReference(d["name"])
    if t == "lit":
        return Literal(d["value"])
    if t == "unary":
        op = UnaryOperator(d["operator"])
        operand = expr_from_dict(d["operand"])
        return UnaryExpression(operator=op, operand=operand)
    raise TypeError(f"Unsupported expression dict type: {t}")


def field_to_dict(f: FieldDefinition) -> Dict[str, Any]:
    return {
        "id": f.id,
        "field_type": f.field_type.value,
        "label": f.label,
        "required": f.required,
        "options": list(f.options),
        "pattern": f.pattern,
        "min_length": f.min_length,
        "max_length": f.max_length,
        "min_value": f.min_value,
        "max_value": f.max_value,
        "integer_only": f.integer_only,
        "past_only": f.past_only,
        "default": f.default,
        "category": f.category.value,
    }


def field_from_dict(d: Dict[str, Any]) -> FieldDefinition:
    return FieldDefinition(
        id=d["id"],
        field_type=FieldType(d["field_type"]),
        label=d.get("label", ""),
        required=d.get("required", False),
        options=tuple(d.get("options", [])),
        pattern=d.get("pattern"),
        min_length=d.get("min_length"),
        max_length=d.get("max_length"),
        min_value=d.get("min_value"),
        max_value=d.get("max_value"),
        integer_only=d.get("integer_only", False),
        past_only=d.get("past_only", False),
        default=d.get("default"),
        category=FieldCategory(d.get("category", FieldCategory.SCALAR.value)),
    )


def consequence_to_dict(c: Consequence) -> Dict[str, Any]:
    return {"field_id": c.field_id, "effect": c.effect.value, "clear_on_exit": c.clear_on_exit}


def consequence_from_dict(d: Dict[str, Any]) -> Consequence:
    return Consequence(
        field_id=d["field_id"],
        effect=Effect(d.get("effect", Effect.REQUIRED.value)),
        clear_on_exit=d.get("clear_on_exit", True),
    )


def rule_to_dict(r: Rule) -> Dict[str, Any]:
    return {
        "id": r.id,
        "trigger_field": r.trigger_field,
        "condition": expr_to_dict(r.condition),
        "consequences": [consequence_to_dict(c) for c in r.consequences],
    }


def rule_from_dict(d: Dict[str, Any]) -> Rule:
    return Rule(
        id=d["id"],
        trigger_field=d["trigger_field"],
        condition=expr_from_dict(d["condition"]),
        consequences=[consequence_from_dict(c) for c in d.get("consequences", [])],
    )


def group_to_dict(g: RepeatableGroup) -> Dict[str, Any]:
    return {
        "name": g.name,
        "label": g.label,
        "element_fields": [field_to_dict(f) for f in g.element_fields],
        "element_rules": [rule_to_dict(r) for r in g.element_rules],
        "trigger_field": g.trigger_field,
        "populate_value": g.populate_value,
        "depopulate_value": g.depopulate_value,
        "min_items": g.min_items,
        "max_items": g.max_items,
        "unique_field": g.unique_field,
        "address_prefix": g.address_prefix,
        "min_items_message": g.min_items_message,
        "unique_message": g.unique_message,
    }


def group_from_dict(d: Dict[str, Any]) -> RepeatableGroup:
    return RepeatableGroup(
        name=d["name"],
        label=d.get("label", ""),
        element_fields=[field_from_dict(f) for f in d.get("element_fields", [])],
        element_rules=[rule_from_dict(r) for r in d.get("element_rules", [])],
        trigger_field=d.get("trigger_field"),
        populate_value=d.get("populate_value"),
        depopulate_value=d.get("depopulate_value"),
        min_items=d.get("min_items", 0),
        max_items=d.get("max_items"),
        unique_field=d.get("unique_field"),
        address_prefix=d.get("address_prefix"),
        min_items_message=d.get("min_items_message", ""),
        unique_message=d.get("unique_message", ""),
    )


def form_to_dict(f: FormDefinition) -> Dict[str, Any]:
    return {
        "name": f.name,
        "fields": [field_to_dict(fd) for fd in f.fields],
        "rules": [rule_to_dict(r) for r in f.rules],
        "groups": [group_to_dict(g) for g in f.groups],
        "metadata": f.metadata,
    }


def form_from_dict(d: Dict[str, Any]) -> FormDefinition:
    f = FormDefinition(name=d.get("name", ""))
    f.fields = [field_from_dict(fd) for fd in d.get("fields", [])]
    f.rules = [rule_from_dict(r) for r in d.get("rules", [])]
    f.groups = [group_from_dict(g) for g in d.get("groups", [])]
    f.metadata = d.get("metadata", {})
    return f


def form_to_json(f: FormDefinition) -> str:
    return json.dumps(form_to_dict(f), sort_keys=True)


def form_from_json(s: str) -> FormDefinition:
    d = json.loads(s)
    return form_from_dict(d)


def form_to_yaml(f: FormDefinition) -> str:
    return yaml.safe_dump(form_to_dict(f))


def form_from_yaml(s: str) -> FormDefinition:
    d = yaml.safe_load(s)
    return form_from_dict(d)
