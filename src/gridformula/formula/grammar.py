"""Lark grammar for the conventional-precedence formula dialect.

Operator tiers, loosest to tightest:
- Logical OR: ||
- Logical AND: &&
- Equality: ==, = (alias), !=
- Comparison: <, >, <=, >=
- Additive: +, -
- Multiplicative: *, /
- Unary: -, !
All binary tiers are left-associative. Terminals mirror the tokenizer's
lexical rules so both parsers accept the same token shapes.
"""

# Lark grammar for formula parsing
FORMULA_GRAMMAR = r"""
    ?start: expression

    ?expression: or_expr

    ?or_expr: and_expr
        | or_expr "||" and_expr -> or_op

    ?and_expr: equality
        | and_expr "&&" equality -> and_op

    ?equality: comparison
        | equality "==" comparison -> eq
        | equality "=" comparison -> eq
        | equality "!=" comparison -> ne

    ?comparison: additive
        | comparison "<" additive -> lt
        | comparison ">" additive -> gt
        | comparison "<=" additive -> le
        | comparison ">=" additive -> ge

    ?additive: multiplicative
        | additive "+" multiplicative -> add
        | additive "-" multiplicative -> sub

    ?multiplicative: unary
        | multiplicative "*" unary -> mul
        | multiplicative "/" unary -> div

    ?unary: atom
        | "-" unary -> neg
        | "!" unary -> not_op

    ?atom: NUMBER -> number
        | STRING -> string
        | FIELD_REF -> field_ref
        | IDENTIFIER -> identifier
        | function_call
        | "(" expression ")"

    function_call: IDENTIFIER "(" [arguments] ")"

    arguments: expression ("," expression)*

    // Field reference: everything between braces, verbatim
    FIELD_REF: /\{[^}]*\}/

    // String literals (single or double quotes, no escapes)
    STRING: /"[^"]*"/ | /'[^']*'/

    // Digit-leading run of digits and dots
    NUMBER: /[0-9][0-9.]*/

    // Letter or underscore, then letters, digits, underscores
    IDENTIFIER: /[^\W\d]\w*/

    %import common.WS
    %ignore WS
"""
