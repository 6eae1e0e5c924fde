"""
Real-time synchronization engine.

Components:
- session.py: signed-in identity + live profile overlay
- directory.py: live user directory (member picker source)
- team_context.py: active team + live roster (membership/profile join)
- task_store.py: live task list of the active team
- projector.py: pure filtered/aggregated task view
- mutations.py: serialized writes with status-message error handling
- live.py: subscription slots and listener plumbing
"""
