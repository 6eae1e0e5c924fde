"""
Collaborator backends behind core.ports.

- local_store.py / local_auth.py / local_blobs.py: SQLite + filesystem, default backend
- firebase.py: Firestore, Identity Toolkit, Firebase Storage
"""
