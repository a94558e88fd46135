"""
Service adapters (Ably realtime SDK, Control API, stats).

IMPORTANT:
- Importing this package MUST NOT open connections
- All connections are acquired through resource handles
"""
