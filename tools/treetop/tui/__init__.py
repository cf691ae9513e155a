"""
TUI (Text User Interface) components for treetop.

This subpackage provides the change-detection engine and the curses-based
dashboard built on top of it.

Modules:
    - model: Events, view state and render snapshots
    - tailer: Tail extraction from open files
    - registry: Monitored files and their per-file state
    - sources: Change sources (watchdog notification, stat polling)
    - coordinator: Background worker that owns file state
    - views: Curses rendering and the interaction loop

Architecture:
    The TUI uses a producer-consumer pattern:
    1. A ChangeSource delivers typed events into a queue
    2. UpdateCoordinator (background thread) re-reads changed files and
       publishes an immutable Snapshot
    3. The main curses loop renders the latest snapshot
"""
