# To-do lists: priority lanes, drag-and-drop reorganization, remote store sync
#
# Components:
#   schema.py   - Data model (TodoList, Task, Priority, TaskDraft, DragRef)
#   backend.py  - Collaborator contracts (AuthProvider, DocumentStore) and errors
#   events.py   - Session-change subscriptions shared by auth providers
#   firebase.py - Identity Toolkit + Firestore REST collaborators
#   local.py    - SQLite collaborators for offline use and tests
#   navigation.py - Screens, navigator, user notices
#   session.py  - Sign-in / sign-up flow
#   board.py    - List/task view state, drop reconciliation, store re-sync
#   app.py      - Composition root (TodoApp)
#   config.py   - YAML + environment configuration
