"""Top-level ``ab`` commands.

The registry lives in ``abcli.commands.registry`` so that tasks can import
``abcli.commands.base`` without pulling in every command.
"""
