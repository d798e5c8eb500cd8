from enum import Enum


class ODataOperator(str, Enum):
    """Operators understood by the expression grammar."""

    # Logical
    AND = "and"
    OR = "or"
    NOT = "not"

    # Comparison
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"
    HAS = "has"
    IN = "in"

    # Arithmetic
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    DIVBY = "divby"
    MOD = "mod"
    NEG = "-"

    # Lambda
    ANY = "any"
    ALL = "all"


COMPARISON_OPERATORS: frozenset[ODataOperator] = frozenset(
    {
        ODataOperator.EQ,
        ODataOperator.NE,
        ODataOperator.GT,
        ODataOperator.GE,
        ODataOperator.LT,
        ODataOperator.LE,
        ODataOperator.HAS,
        ODataOperator.IN,
    }
)

ADDITIVE_OPERATORS: frozenset[ODataOperator] = frozenset(
    {ODataOperator.ADD, ODataOperator.SUB}
)

MULTIPLICATIVE_OPERATORS: frozenset[ODataOperator] = frozenset(
    {ODataOperator.MUL, ODataOperator.DIV, ODataOperator.DIVBY, ODataOperator.MOD}
)

# Symbolic spellings accepted in $compute expressions.
SYMBOL_OPERATORS: dict[str, ODataOperator] = {
    "+": ODataOperator.ADD,
    "-": ODataOperator.SUB,
    "*": ODataOperator.MUL,
    "/": ODataOperator.DIVBY,
    "%": ODataOperator.MOD,
}

# Infix used when deriving a field name from an arithmetic expression.
NAME_INFIXES: dict[ODataOperator, str] = {
    ODataOperator.ADD: "plus",
    ODataOperator.SUB: "minus",
    ODataOperator.MUL: "times",
    ODataOperator.DIV: "div",
    ODataOperator.DIVBY: "div",
    ODataOperator.MOD: "mod",
}
