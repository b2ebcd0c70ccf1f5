"""
rl4track - Evidence capture for agent file edits.

rl4track runs as a post-edit hook and records every file the editing
agent writes into the workspace's .rl4 directory:
- An append-only activity journal (.rl4/evidence/activity.jsonl)
- A content-addressed, gzip-compressed blob per file version
  (.rl4/snapshots/<sha256>.content.gz)
- A per-path history of captured digests (.rl4/snapshots/file_index.json)

The hook never blocks or fails the editing workflow.

Example usage:
    $ echo '{"tool_name": "Write", ...}' | rl4track hook
    $ rl4track log --limit 20
    $ rl4track history src/app.py
    $ rl4track verify
"""

__version__ = "0.1.0"
__author__ = "rl4track Contributors"

__all__ = [
    "__version__",
    "__author__",
]
