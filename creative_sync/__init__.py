"""
CREATIVE SYNC
Moves package creatives from a file store onto Meta and assembles
placement-aware rotation creatives from them

This package contains:
- config: settings and fixed limits
- infrastructure: TTL cache, retry policy and error taxonomy
- integrations: Meta gateway, asset stores, Slack notifications
- creative: discovery, validation, upload pipeline and assembly
"""

__version__ = "1.0.0"
