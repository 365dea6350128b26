"""
Chat app tests.

Modules:
- test_models.py: conversation, membership and message constraints
- test_services.py: conversation directory and message log services
- test_presence.py: heartbeat and expiry handling
- test_fanout.py: topics, versions and commit-bound publishing
- test_subscriptions.py: per-socket ordering and resync decisions
- test_consumers.py: WebSocket protocol
- test_views.py: REST endpoints
- test_integration.py: two-client journey over HTTP and WebSocket
"""
