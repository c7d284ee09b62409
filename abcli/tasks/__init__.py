"""Sub-tasks run by the top-level commands (``service new``, ``test setup``...)."""
