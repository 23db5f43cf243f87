"""Core functionality for huestatus.

This package contains:
- transport: HTTP client with timeout and bounded retry
- bridge: Hue v1 control protocol requests and error envelopes
- discovery: Remote, mDNS and manual bridge discovery
- auth: Link button authentication state machine
- capabilities: Light and bridge capability resolution
- scenes: Status scene creation, validation and recall
- orchestrator: Setup and status flows used by the CLI
- config: Configuration file loading, saving and validation
- errors: Exception taxonomy with exit codes and hints
"""
