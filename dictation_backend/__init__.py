"""
Dictation upload mock backend package.

Design intent:
- Simulate the chunked audio upload flow a mobile dictation client talks to.
- Keep session/chunk state in memory behind small typed stores.
- Leave the HTTP surface thin; protocol rules live in internal_core.
"""
