"""
Mira - conversational assistant package

Turns typed or spoken utterances into conversational replies, app-launch
actions, or reminders. Every side-effecting action waits for an explicit
confirm/reject from the user.

Core modules:
- utils: Environment parsing and small async/byte helpers
- assistant: Intent extraction, pending-action confirmation, speech capture,
  and the conversation orchestrator
"""

__version__ = "0.4.2"
