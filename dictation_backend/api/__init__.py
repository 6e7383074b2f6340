"""
API boundary for the dictation upload mock.

Design intent:
- Expose the mobile client's wire contract with camelCase JSON.
- Translate protocol errors into ``{"error": ...}`` responses.
- Keep upload sequencing rules inside internal_core.
"""
