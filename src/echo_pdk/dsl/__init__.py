"""Template language: lexer, parser, AST, operators, evaluator and renderer.

Import from the submodules (``echo_pdk.dsl.parser``...) or from the
top-level ``echo_pdk`` package.
"""
