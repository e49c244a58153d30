# boardsync: ordered column/task reconciliation for kanban boards
#
# Components:
#   schema.py   - Data model (Board, Column, Task, Member)
#   ordering.py - Order model: move/renumber primitives over position-carrying lists
#   moves.py    - Drag gestures (MoveEvent) and move planning
#   gateway.py  - Remote board store protocol and REST client
#   engine.py   - Optimistic apply, sequential persistence, reload on failure
#   config.py   - YAML/env configuration and logging setup
#   cli.py      - Command line front end
