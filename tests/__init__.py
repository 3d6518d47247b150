"""
Test suite for GigFlow.

This package contains unit tests and integration tests for:
- Gig and bid status state machines
- Configuration loading and validation
- Gig, bid and notification stores
- The hire coordinator in transactional and compensating modes
- Real-time notifications and the WebSocket room manager
- HTTP endpoints
"""
