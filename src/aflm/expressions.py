"""
Expression System for AFLM

Every rule condition (visibility triggers, requirement guards) is
represented as an Abstract Syntax Tree (AST), never as a string or a
Python lambda.

This ensures:
    - The rule table stays enumerable and analysable
    - Conditions can be serialized to JSON/YAML
    - Contradiction checks can run over the static table

ARCHITECTURAL RULE:
    No raw strings or code fragments in rule conditions.
    All logic must be AST-based.
    Evaluation lives in aflm.rules, not here.
"""

from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Union


class Expression(ABC):
    """
    Base class for all AST expressions.

    This class is structure only. It exists to give the expression
    hierarchy a common type.
    """
    pass


class BinaryOperator(Enum):
    """
    Binary operators supported in rule conditions.

    Keep this minimal. Every operator here must be meaningful against
    a single flat record snapshot.
    """

    # Logical operators
    AND = "AND"
    OR = "OR"

    # Comparison operators
    EQUALS = "=="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    GREATER_EQUAL = ">="
    LESS_THAN = "<"
    LESS_EQUAL = "<="


@dataclass(frozen=True)
class BinaryExpression(Expression):
    """
    Represents a binary logical or comparison expression.

    Example:
        (applied_for == "Class II" AND wets_bed == "Yes")

    Becomes:
        BinaryExpression(
            operator=BinaryOperator.AND,
            left=BinaryExpression(
                operator=BinaryOperator.EQUALS,
                left=VariableReference("applied_for"),
                right=Literal("Class II")
            ),
            right=BinaryExpression(
                operator=BinaryOperator.EQUALS,
                left=VariableReference("wets_bed"),
                right=Literal("Yes")
            )
        )

    IMPORTANT:
        This object is immutable (frozen=True).
        It does NOT evaluate itself.
    """

    operator: BinaryOperator
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class VariableReference(Expression):
    """
    References a field of the record snapshot.

    Inside a repeatable group's element rules the name is resolved
    against the element, not the top-level record.

    IMPORTANT:
        This object does NOT validate field existence.
        That belongs in aflm.analyzer.
    """

    name: str


@dataclass(frozen=True)
class Literal(Expression):
    """
    Represents a literal constant value.

    Examples:
        - "Yes"
        - "Class XI"
        - True
    """

    value: Union[int, float, str, bool]


class UnaryOperator(Enum):
    """Unary operators."""
    NOT = "NOT"


@dataclass(frozen=True)
class UnaryExpression(Expression):
    """
    Represents a unary operation (e.g., NOT).

    Example:
        NOT (is_home_schooled == "Yes")
    """

    operator: UnaryOperator
    operand: Expression


def equals(name: str, value: Union[int, float, str, bool]) -> BinaryExpression:
    """Shorthand for ``name == value``."""
    return BinaryExpression(
        operator=BinaryOperator.EQUALS,
        left=VariableReference(name),
        right=Literal(value),
    )


def all_of(*exprs: Expression) -> Expression:
    """Left-fold expressions with AND."""
    if not exprs:
        raise ValueError("all_of() needs at least one expression")
    result = exprs[0]
    for expr in exprs[1:]:
        result = BinaryExpression(operator=BinaryOperator.AND, left=result, right=expr)
    return result
