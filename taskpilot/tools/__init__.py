"""Sandboxed tools: file operations, shell and git commands, command policy.

Import from the submodules (``taskpilot.tools.executor`` etc.); this package
is imported by ``taskpilot.workspace`` and stays free of eager imports.
"""
