"""
Task subsystem.

Components:
- task_models.py: data structures (Task) and the error hierarchy
- task_store.py: SQLite-backed storage + query/update helpers
- task_commands.py: chat command processor (the task lifecycle state machine)
- task_api.py: maintenance helpers (retention purge, JSON import)
- task_sweeper.py: polling loop that purges old tasks per workspace
"""
