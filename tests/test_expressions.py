"""
Tests for the AFLM Expression System

These tests verify:
    - Expression objects can be created
    - Expression tree composition (rule conditions of the admission form)
    - Expression immutability
    - The equals / all_of shorthands
"""

import pytest
from aflm.expressions import (
    Expression,
    BinaryExpression,
    BinaryOperator,
    VariableReference,
    Literal,
    UnaryExpression,
    UnaryOperator,
    all_of,
    equals,
)


class TestVariableReference:
    """Test variable reference expressions."""

    def test_create_variable_reference(self):
        """Should create a reference to a named field."""
        var_ref = VariableReference("gender")
        assert var_ref.name == "gender"

    def test_variable_reference_is_expression(self):
        var_ref = VariableReference("id_proof")
        assert isinstance(var_ref, Expression)

    def test_variable_reference_immutable(self):
        """Variable references should be immutable."""
        var_ref = VariableReference("gender")
        with pytest.raises(AttributeError):
            var_ref.name = "Changed"


class TestLiteral:
    """Test literal value expressions."""

    def test_string_literal(self):
        lit = Literal("Yes")
        assert lit.value == "Yes"

    def test_boolean_literal(self):
        """WhatsApp flags compare against booleans."""
        lit = Literal(False)
        assert lit.value is False

    def test_integer_literal(self):
        lit = Literal(1980)
        assert lit.value == 1980

    def test_literal_immutable(self):
        lit = Literal("Yes")
        with pytest.raises(AttributeError):
            lit.value = "No"


class TestBinaryExpression:
    """Test binary logical and comparison expressions."""

    def test_equality_expression(self):
        expr = BinaryExpression(
            operator=BinaryOperator.EQUALS,
            left=VariableReference("gender"),
            right=Literal("Other")
        )
        assert expr.operator == BinaryOperator.EQUALS
        assert isinstance(expr.left, VariableReference)
        assert isinstance(expr.right, Literal)

    def test_comparison_operators(self):
        """Should support all comparison operators."""
        operators = [
            BinaryOperator.EQUALS,
            BinaryOperator.NOT_EQUALS,
            BinaryOperator.GREATER_THAN,
            BinaryOperator.GREATER_EQUAL,
            BinaryOperator.LESS_THAN,
            BinaryOperator.LESS_EQUAL,
        ]
        for op in operators:
            expr = BinaryExpression(operator=op, left=VariableReference("age"), right=Literal(5))
            assert expr.operator == op

    def test_binary_expression_immutable(self):
        expr = equals("wets_bed", "Yes")
        with pytest.raises(AttributeError):
            expr.operator = BinaryOperator.OR

    def test_structural_equality(self):
        """Two identical trees compare equal, so rule tables can be diffed."""
        assert equals("id_proof", "Passport") == equals("id_proof", "Passport")
        assert equals("id_proof", "Passport") != equals("id_proof", "Aadhaar Card")


class TestUnaryExpression:
    """Test unary expressions like NOT."""

    def test_not_expression(self):
        expr = UnaryExpression(
            operator=UnaryOperator.NOT,
            operand=equals("is_home_schooled", "Yes")
        )
        assert expr.operator == UnaryOperator.NOT
        assert isinstance(expr.operand, BinaryExpression)


class TestShorthands:
    """Test the condition-building helpers used by the rule table."""

    def test_equals(self):
        expr = equals("applied_for", "Class II")
        assert expr == BinaryExpression(
            operator=BinaryOperator.EQUALS,
            left=VariableReference("applied_for"),
            right=Literal("Class II"),
        )

    def test_all_of_folds_left(self):
        """
        Test: bed wetting frequency guard
            applied_for == "Class II" AND wets_bed == "Yes"
        """
        expr = all_of(equals("applied_for", "Class II"), equals("wets_bed", "Yes"))
        assert expr.operator == BinaryOperator.AND
        assert expr.left == equals("applied_for", "Class II")
        assert expr.right == equals("wets_bed", "Yes")

    def test_all_of_three_terms(self):
        a, b, c = equals("a", 1), equals("b", 2), equals("c", 3)
        expr = all_of(a, b, c)
        assert expr.right == c
        assert expr.left.left == a
        assert expr.left.right == b

    def test_single_term_is_returned_unchanged(self):
        a = equals("gender", "Other")
        assert all_of(a) is a

    def test_empty_fold_rejected(self):
        with pytest.raises(ValueError):
            all_of()
